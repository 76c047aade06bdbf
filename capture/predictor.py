"""
Prediction over the current best checkpoint.

Pipeline:
    1. Decode the image → (224, 224, 3) uint8
    2. Frozen MobileNetV2 → embedding
    3. Classification head → softmax probabilities
    4. Rank ``{label, score}`` pairs, highest first

The head is loaded lazily and reloaded whenever a training session
writes a newer checkpoint (``meta.json`` ``updatedAt`` changes), so
predictions always come from the best model for the current label set.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional, Tuple

import numpy as np

from training.errors import ModelNotReadyError
from training.features import decode_image

logger = logging.getLogger(__name__)


class Predictor:
    """Ranks labels for an image using the persisted head."""

    def __init__(self, extractor, checkpoints, backend, image_size: Tuple[int, int] = (224, 224)):
        self.extractor = extractor
        self.checkpoints = checkpoints
        self.backend = backend
        self.image_size = image_size
        self._lock = threading.Lock()
        self._model = None
        self._labels: List[str] = []
        self._version: Optional[str] = None

    def _ensure_loaded(self) -> None:
        meta = self.checkpoints.read_metadata()
        if meta is None:
            raise ModelNotReadyError("No trained model yet. Train one first.")
        if self._model is not None and meta.updated_at == self._version:
            return

        model = self.checkpoints.load_model()
        labels = self.checkpoints.read_labels()
        if model is None or not labels:
            raise ModelNotReadyError("Checkpoint is incomplete; retrain the model.")

        self._model, self._labels, self._version = model, labels, meta.updated_at
        self.backend.release()
        logger.info("Loaded classifier head (labels: %s)", ", ".join(labels))

    def predict(self, image_bytes: bytes) -> List[Dict[str, float]]:
        """Return ``[{label, score}, …]`` sorted by score, descending.

        Raises
        ------
        ModelNotReadyError
            If no checkpoint has been written yet.
        ExtractorError
            If the frozen extractor cannot be loaded.
        SampleReadError
            If the image cannot be decoded.
        """
        image = decode_image(image_bytes, self.image_size)
        with self._lock:
            self._ensure_loaded()
            self.extractor.load()
            features = self.extractor.infer(image[np.newaxis])
            probs = self.backend.predict(self._model, features)[0]
            labels = list(self._labels)

        ranking = [
            {"label": label, "score": float(score)}
            for label, score in zip(labels, probs)
        ]
        ranking.sort(key=lambda r: r["score"], reverse=True)
        return ranking


_predictor: Optional[Predictor] = None
_predictor_lock = threading.Lock()


def get_predictor() -> Predictor:
    """Process-wide predictor sharing the orchestrator's extractor and checkpoints."""
    global _predictor
    with _predictor_lock:
        if _predictor is None:
            from training.tasks import get_orchestrator

            orchestrator = get_orchestrator()
            _predictor = Predictor(
                orchestrator.extractor,
                orchestrator.checkpoints,
                orchestrator.backend,
            )
        return _predictor


def set_predictor(predictor: Optional[Predictor]) -> None:
    global _predictor
    with _predictor_lock:
        _predictor = predictor
