"""
Frozen MobileNetV2 feature extractor.

Architecture::

    Input(224,224,3) uint8
      → mobilenet_v2.preprocess_input      (scales to [-1, 1])
      → MobileNetV2(include_top=False, frozen)
      → GlobalAveragePooling                ← 1280-d embedding

The network is loaded once, lazily, and never trained. Loading is
retried a few times (the ImageNet weights may need a download) and a
final failure surfaces as ``ExtractorError``.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional, Tuple

import numpy as np
import tensorflow as tf
from tensorflow.keras.applications import mobilenet_v2
from tensorflow.keras.applications.mobilenet_v2 import MobileNetV2

from .errors import ExtractorError

logger = logging.getLogger(__name__)


class MobileNetV2Extractor:
    """``infer(images) -> embeddings`` over a frozen MobileNetV2 base."""

    def __init__(
        self,
        weights_path: Optional[Path] = None,
        image_size: Tuple[int, int] = (224, 224),
        *,
        max_attempts: int = 3,
        retry_delay: float = 2.0,
    ):
        self.weights_path = Path(weights_path) if weights_path else None
        self.image_size = image_size
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._model: Optional[tf.keras.Model] = None

    @property
    def loaded(self) -> bool:
        return self._model is not None

    def load(self) -> None:
        """Load the base network (idempotent).

        Raises
        ------
        ExtractorError
            If every attempt fails.
        """
        if self._model is not None:
            return

        last_exc: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                self._model = self._build()
                logger.info("Frozen extractor ready (attempt %d)", attempt)
                return
            except Exception as exc:
                last_exc = exc
                logger.warning(
                    "Loading MobileNetV2 failed (attempt %d/%d): %s",
                    attempt, self.max_attempts, exc,
                )
                if attempt < self.max_attempts:
                    time.sleep(self.retry_delay)

        raise ExtractorError(
            f"Feature extractor unavailable after {self.max_attempts} attempts: {last_exc}"
        ) from last_exc

    def _build(self) -> tf.keras.Model:
        h, w = self.image_size
        if self.weights_path is not None and self.weights_path.exists():
            base = MobileNetV2(
                input_shape=(h, w, 3), include_top=False, pooling="avg", weights=None,
            )
            base.load_weights(str(self.weights_path))
            logger.info("Loaded MobileNetV2 weights from %s", self.weights_path)
        else:
            base = MobileNetV2(
                input_shape=(h, w, 3), include_top=False, pooling="avg", weights="imagenet",
            )
            logger.info("Using Keras-downloaded MobileNetV2 ImageNet weights")
        base.trainable = False
        return base

    def infer(self, images: np.ndarray) -> np.ndarray:
        """Embed a batch of ``B×H×W×3`` uint8 images → float32 ``B×D``."""
        self.load()
        batch = mobilenet_v2.preprocess_input(np.asarray(images, dtype=np.float32))
        try:
            features = self._model(batch, training=False)
        except (tf.errors.OpError, ValueError) as exc:
            raise ExtractorError(f"Feature extraction failed: {exc}") from exc
        return np.asarray(features, dtype=np.float32)
