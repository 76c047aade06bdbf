"""
Training API endpoints.

POST /api/train/          – Start a training session (fire-and-forget).
GET  /api/train/status/   – Poll the current session's progress.
"""

from __future__ import annotations

import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from training.config import TrainingConfig
from training.errors import ConcurrencyError, ValidationError
from training.tasks import get_status, start_training

from .helpers import load_json_body

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def api_train_start(request):
    """Start a new training session.

    Accepts an optional JSON body overriding config defaults, e.g.
    ``{"epochs": 30, "useIncremental": true}``. Returns as soon as the
    session is accepted; poll ``/api/train/status/`` for the outcome.
    Returns 409 if a session is already running.
    """
    try:
        overrides = load_json_body(request)
    except ValueError:
        return JsonResponse({"success": False, "message": "Invalid JSON body."}, status=400)

    try:
        config = TrainingConfig.from_request(overrides)
        start_training(config)
    except ConcurrencyError as exc:
        return JsonResponse({"success": False, "message": str(exc)}, status=409)
    except ValidationError as exc:
        return JsonResponse({"success": False, "message": str(exc)}, status=400)

    return JsonResponse({
        "success": True,
        "message": "Training started.",
        "config": config.to_dict(),
    })


@require_GET
def api_train_status(request):
    """Return the status snapshot (phase, epoch, history, best metrics…)."""
    return JsonResponse(get_status())
