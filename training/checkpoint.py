"""
Keep-best checkpoint persistence.

A checkpoint is one directory holding three artefacts that only make
sense together::

    current/
    ├── model.keras   ← head weights
    ├── labels.json   ← sorted label list (output index → label)
    └── meta.json     ← CheckpointMetadata for that label set

Writes never touch ``current/`` in place. The unit is assembled in a
temporary sibling directory and swapped in with two ``os.replace``
calls; the previous unit is parked as ``current.bak`` during the swap
and restored on the next read if the process died in between. Reads
and the swap share one lock, and recovery never runs while a swap is
in progress, so a concurrent reader cannot undo a live write.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

from .errors import CheckpointError
from .types import CheckpointMetadata, unique_labels

logger = logging.getLogger(__name__)

MODEL_FILENAME = "model.keras"
LABELS_FILENAME = "labels.json"
META_FILENAME = "meta.json"


class CheckpointStore:
    """Reads and atomically writes the best checkpoint for a label set."""

    def __init__(self, directory: Path, backend):
        self.directory = Path(directory)
        self.backend = backend
        self._lock = threading.RLock()
        self._swapping = False

    @property
    def backup_dir(self) -> Path:
        return self.directory.with_name(self.directory.name + ".bak")

    # ── Reading ─────────────────────────────────────────────────────────

    def read_metadata(self) -> Optional[CheckpointMetadata]:
        """Return the persisted metadata, or None if absent / unreadable."""
        with self._lock:
            self._recover()
            meta_path = self.directory / META_FILENAME
            if not meta_path.exists():
                return None
            try:
                data = json.loads(meta_path.read_text(encoding="utf-8"))
                return CheckpointMetadata.from_dict(data)
            except (OSError, ValueError, TypeError) as exc:
                logger.warning("Ignoring unreadable checkpoint metadata %s: %s", meta_path, exc)
                return None

    def read_baseline(self, label_set: Iterable[str]) -> CheckpointMetadata:
        """Best-known record for *label_set*, or the zero baseline.

        The persisted record only counts when its label set is exactly
        the same sorted set; any other task starts from zero.
        """
        labels = unique_labels(label_set)
        meta = self.read_metadata()
        if meta is not None and meta.matches(labels):
            logger.info(
                "Checkpoint baseline for %s: val_acc=%.4f (epoch %d)",
                labels, meta.best_val_acc, meta.best_epoch,
            )
            return meta
        if meta is not None:
            logger.info(
                "Label set changed (%s → %s); baseline reset to zero",
                meta.label_set, labels,
            )
        return CheckpointMetadata.zero(labels)

    def read_labels(self) -> Optional[List[str]]:
        with self._lock:
            self._recover()
            labels_path = self.directory / LABELS_FILENAME
            if not labels_path.exists():
                return None
            try:
                return list(json.loads(labels_path.read_text(encoding="utf-8")))
            except (OSError, ValueError) as exc:
                logger.warning("Ignoring unreadable label file %s: %s", labels_path, exc)
                return None

    def has_model(self) -> bool:
        with self._lock:
            self._recover()
            return (self.directory / MODEL_FILENAME).exists()

    def load_model(self):
        """Load the persisted model through the backend, or return None."""
        with self._lock:
            if not self.has_model():
                return None
            model_path = self.directory / MODEL_FILENAME
            try:
                return self.backend.load(model_path)
            except Exception:
                logger.exception("Could not load checkpoint model %s", model_path)
                return None

    # ── Writing ─────────────────────────────────────────────────────────

    def write_checkpoint(
        self,
        model,
        label_set: Iterable[str],
        metadata: CheckpointMetadata,
    ) -> CheckpointMetadata:
        """Persist weights, labels and metadata as one unit.

        Returns the metadata as written (with ``updated_at`` stamped).

        Raises
        ------
        CheckpointError
            If any artefact cannot be written. The previous unit is
            left untouched in that case.
        """
        labels = unique_labels(label_set)
        metadata.label_set = labels
        metadata.updated_at = datetime.now(timezone.utc).isoformat()

        parent = self.directory.parent
        staging: Optional[Path] = None
        try:
            parent.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(prefix=".ckpt-", dir=parent))

            self.backend.save(model, staging / MODEL_FILENAME)
            (staging / LABELS_FILENAME).write_text(json.dumps(labels), encoding="utf-8")
            (staging / META_FILENAME).write_text(
                json.dumps(metadata.to_dict(), indent=2), encoding="utf-8",
            )

            with self._lock:
                self._swapping = True
                try:
                    self._swap_in(staging)
                finally:
                    self._swapping = False
            staging = None
        except Exception as exc:
            raise CheckpointError(f"Checkpoint write failed: {exc}") from exc
        finally:
            if staging is not None:
                shutil.rmtree(staging, ignore_errors=True)

        logger.info(
            "Checkpoint saved: val_acc=%.4f epoch=%d labels=%s",
            metadata.best_val_acc, metadata.best_epoch, labels,
        )
        return metadata

    # -- internals --

    def _swap_in(self, staging: Path) -> None:
        backup = self.backup_dir
        if backup.exists():
            shutil.rmtree(backup)
        if self.directory.exists():
            os.replace(self.directory, backup)
        try:
            os.replace(staging, self.directory)
        except OSError:
            if backup.exists() and not self.directory.exists():
                os.replace(backup, self.directory)
            raise
        shutil.rmtree(backup, ignore_errors=True)

    def _recover(self) -> None:
        """Restore the parked unit if a swap was interrupted."""
        if self._swapping:
            return
        backup = self.backup_dir
        if backup.exists() and not self.directory.exists():
            logger.warning("Restoring checkpoint from interrupted swap: %s", backup)
            os.replace(backup, self.directory)
