"""
ORM-backed sample store used by the training stack.

Filters and patches are plain dicts of Django field lookups
(``{"status": "pending"}``, ``{"id__in": [...]}``), so the training
code never imports the ORM. Image bytes are read through Django's
default storage.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from django.core.exceptions import SuspiciousFileOperation
from django.core.files.storage import default_storage
from django.db import transaction

from training.types import Sample as SampleRecord

from .models import Sample

logger = logging.getLogger(__name__)


class DjangoSampleStore:
    """``SampleStore`` over the ``Sample`` model."""

    def find(self, filter: Optional[Dict[str, Any]] = None) -> List[SampleRecord]:
        """Matching samples in creation order."""
        qs = Sample.objects.filter(**(filter or {})).order_by("created_at", "id")
        return [row.to_record() for row in qs]

    def insert(self, doc: Dict[str, Any]) -> SampleRecord:
        return Sample.objects.create(**doc).to_record()

    def update(self, filter: Dict[str, Any], patch: Dict[str, Any], multi: bool = False) -> int:
        """Apply *patch* to the first match, or to every match with ``multi``."""
        qs = Sample.objects.filter(**filter)
        if not multi:
            first = qs.order_by("created_at", "id").values_list("pk", flat=True).first()
            if first is None:
                return 0
            qs = Sample.objects.filter(pk=first)
        return qs.update(**patch)

    def remove(self, filter: Dict[str, Any], multi: bool = False) -> int:
        """Delete matching rows and their image files; return the row count."""
        qs = Sample.objects.filter(**filter).order_by("created_at", "id")
        if not multi:
            qs = qs[:1]
        rows = list(qs)
        with transaction.atomic():
            Sample.objects.filter(pk__in=[row.pk for row in rows]).delete()
        for row in rows:
            self._delete_file(row.image_ref)
        return len(rows)

    def read_image(self, image_ref: str) -> bytes:
        try:
            with default_storage.open(image_ref, "rb") as fh:
                return fh.read()
        except SuspiciousFileOperation as exc:
            raise FileNotFoundError(f"Refusing to read {image_ref!r}: {exc}") from exc

    # -- internals --

    def _delete_file(self, image_ref: str) -> None:
        try:
            if image_ref and default_storage.exists(image_ref):
                default_storage.delete(image_ref)
        except OSError:
            logger.exception("File delete failed for %s", image_ref)
