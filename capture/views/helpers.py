"""
Shared constants and helpers for the JSON views.
"""

from __future__ import annotations

import base64
import binascii
import io
import json
import logging
import re
import uuid
from typing import Any, Dict

from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from PIL import Image as PILImage

from training.types import Sample

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_UPLOAD_SIZE = 10 * 1024 * 1024  # 10 MB decoded

UPLOAD_DIR = "uploads"

_DATA_URL_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,")


# ---------------------------------------------------------------------------
# Request parsing
# ---------------------------------------------------------------------------

def load_json_body(request) -> Dict[str, Any]:
    """Parse a JSON object body; an empty body is ``{}``.

    Raises ValueError for malformed JSON or a non-object payload.
    """
    if not request.body:
        return {}
    body = json.loads(request.body)
    if not isinstance(body, dict):
        raise ValueError("JSON body must be an object.")
    return body


def decode_base64_image(value: Any) -> bytes:
    """Decode a base64 image (bare or ``data:image/...;base64,`` URL).

    Raises ValueError if the payload is not base64, too large, or not an
    image Pillow can identify.
    """
    if not isinstance(value, str) or not value:
        raise ValueError("image must be a base64 string.")
    try:
        data = base64.b64decode(_DATA_URL_PREFIX.sub("", value, count=1), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"image is not valid base64: {exc}") from exc

    if len(data) > MAX_UPLOAD_SIZE:
        raise ValueError(f"image too large ({len(data):,} bytes). Max {MAX_UPLOAD_SIZE:,}.")

    try:
        with PILImage.open(io.BytesIO(data)) as img:
            img.verify()
    except (OSError, SyntaxError) as exc:
        raise ValueError("image data is not a readable image.") from exc
    return data


def save_upload(data: bytes) -> str:
    """Store image bytes under a fresh name and return the storage name."""
    return default_storage.save(f"{UPLOAD_DIR}/{uuid.uuid4().hex}.jpg", ContentFile(data))


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------

def sample_json(request, sample: Sample) -> Dict[str, Any]:
    """Client representation of a sample (absolute image URL included)."""
    image_url = default_storage.url(sample.image_ref)
    return {
        "id": sample.id,
        "label": sample.label,
        "status": sample.status,
        "imageUrl": image_url,
        "image": request.build_absolute_uri(image_url),
        "confidence_at_capture": sample.confidence_at_capture,
        "createdAt": sample.created_at.isoformat() if sample.created_at else None,
    }
