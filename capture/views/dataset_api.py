"""
Dataset APIs — list, capture, correct, and delete labelled samples.

GET    /api/dataset/                 – All samples, newest first.
POST   /api/dataset/                 – Capture a sample (status "active").
DELETE /api/dataset/<id>/            – Delete one sample and its file.
DELETE /api/dataset/label/<label>/   – Delete every sample with a label.
GET    /api/pending-data/            – Correction samples awaiting training.
POST   /api/mark-trained/            – Mark samples as trained by id.
POST   /api/upload-sample/           – Upload a correction (status "pending").
"""

from __future__ import annotations

import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from capture.store import DjangoSampleStore

from .helpers import decode_base64_image, load_json_body, sample_json, save_upload

logger = logging.getLogger(__name__)

store = DjangoSampleStore()


def _create_sample(request, status: str):
    """Shared body of the two capture endpoints."""
    try:
        body = load_json_body(request)
    except ValueError:
        return None, JsonResponse({"success": False, "message": "Invalid JSON body."}, status=400)

    label = str(body.get("label") or "").strip()
    if not label or not body.get("image"):
        return None, JsonResponse(
            {"success": False, "message": "Both image and label are required."}, status=400,
        )

    try:
        data = decode_base64_image(body["image"])
    except ValueError as exc:
        return None, JsonResponse({"success": False, "message": str(exc)}, status=400)

    confidence = body.get("confidence")
    try:
        confidence = float(confidence) if confidence is not None else None
    except (TypeError, ValueError):
        return None, JsonResponse(
            {"success": False, "message": "confidence must be a number."}, status=400,
        )

    doc = {"image_ref": save_upload(data), "label": label, "status": status}
    if status == "pending":
        doc["confidence_at_capture"] = confidence if confidence is not None else 0.0

    sample = store.insert(doc)
    logger.info("Captured %s sample %s (label=%s)", status, sample.id, label)
    return sample, None


@csrf_exempt
@require_http_methods(["GET", "POST"])
def api_dataset(request):
    """List every sample (GET) or capture a new one (POST ``{image, label}``)."""
    if request.method == "GET":
        samples = list(reversed(store.find()))
        return JsonResponse({
            "success": True,
            "data": [sample_json(request, s) for s in samples],
        })

    sample, error = _create_sample(request, status="active")
    if error is not None:
        return error
    return JsonResponse({"success": True, "data": sample_json(request, sample)})


@csrf_exempt
@require_http_methods(["DELETE"])
def api_dataset_delete(request, sample_id: int):
    """Delete a single sample and its image file."""
    removed = store.remove({"id": sample_id})
    if not removed:
        return JsonResponse({"success": False, "message": "Sample not found."}, status=404)
    return JsonResponse({"success": True})


@csrf_exempt
@require_http_methods(["DELETE"])
def api_dataset_delete_label(request, label: str):
    """Delete every sample carrying *label*."""
    removed = store.remove({"label": label}, multi=True)
    logger.info("Deleted %d sample(s) with label '%s'", removed, label)
    return JsonResponse({"success": True, "removed": removed})


@require_GET
def api_pending_data(request):
    """Correction samples still waiting for a training session, oldest first."""
    samples = store.find({"status": "pending"})
    return JsonResponse({
        "success": True,
        "data": [sample_json(request, s) for s in samples],
    })


@csrf_exempt
@require_POST
def api_mark_trained(request):
    """Mark samples as trained. Expects JSON: ``{"ids": [...]}``."""
    try:
        body = load_json_body(request)
    except ValueError:
        return JsonResponse({"success": False, "message": "Invalid JSON body."}, status=400)

    ids = body.get("ids") or []
    if not isinstance(ids, list) or not all(isinstance(i, int) for i in ids):
        return JsonResponse(
            {"success": False, "message": "ids must be a list of sample ids."}, status=400,
        )

    updated = 0
    if ids:
        updated = store.update({"id__in": ids}, {"status": "trained"}, multi=True)
    return JsonResponse({"success": True, "updated": updated})


@csrf_exempt
@require_POST
def api_upload_sample(request):
    """Upload a user-corrected sample (``{image, label, confidence?}``) as pending."""
    sample, error = _create_sample(request, status="pending")
    if error is not None:
        return error
    return JsonResponse({
        "success": True,
        "message": "Sample saved.",
        "data": sample_json(request, sample),
    })
