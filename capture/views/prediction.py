"""
Prediction endpoint — base64 image in, best ``{label, score}`` out.
"""

from __future__ import annotations

import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from capture.predictor import get_predictor
from training.errors import ExtractorError, ModelNotReadyError, SampleReadError

from .helpers import decode_base64_image, load_json_body

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def api_predict(request):
    """Classify an image with the current best model.

    Request body (JSON):
        image : str — base64 image, optionally a ``data:`` URL.

    Returns the top ``label`` / ``score`` plus the full ``ranking``.
    503 until a model has been trained.
    """
    try:
        body = load_json_body(request)
    except ValueError:
        return JsonResponse({"error": "Invalid JSON body."}, status=400)

    if not body.get("image"):
        return JsonResponse({"error": "Please provide an image (base64)."}, status=400)

    try:
        data = decode_base64_image(body["image"])
        ranking = get_predictor().predict(data)
    except (ValueError, SampleReadError) as exc:
        return JsonResponse({"error": str(exc)}, status=400)
    except (ModelNotReadyError, ExtractorError) as exc:
        return JsonResponse({"error": str(exc)}, status=503)
    except Exception:
        logger.exception("Prediction failed")
        return JsonResponse({"error": "Prediction failed."}, status=500)

    best = ranking[0]
    return JsonResponse({"label": best["label"], "score": best["score"], "ranking": ranking})
