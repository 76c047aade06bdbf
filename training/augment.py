"""
Randomised image augmentation for training samples.

Every captured sample contributes one augmented copy to the training
set, so a session sees ``2 × samples`` rows. Each transform fires
independently with its own probability:

    flip        – mirror left/right
    rotation    – ±0.2 rad (≈ ±11.5°), bilinear
    zoom        – crop a random window of scale [0.7, 1.0], resize back
    brightness  – add a uniform offset in ±25 intensity units
    noise       – additive Gaussian noise, σ = 5

Geometric transforms run first on the uint8 image, photometric ones on
a float copy; the result is clamped to [0, 255] and returned as uint8
with the input's shape.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from PIL import Image


@dataclass(frozen=True)
class AugmentationPolicy:
    """Per-transform probabilities and magnitudes."""

    flip_prob: float = 0.5
    brightness_prob: float = 0.5
    rotation_prob: float = 0.5
    zoom_prob: float = 0.5
    noise_prob: float = 0.4

    brightness_delta: float = 25.0
    max_rotation: float = 0.2          # radians
    zoom_range: Tuple[float, float] = (0.7, 1.0)
    noise_std: float = 5.0

    @classmethod
    def from_config(cls, config) -> "AugmentationPolicy":
        return cls(
            flip_prob=config.flip_prob,
            brightness_prob=config.brightness_prob,
            rotation_prob=config.rotation_prob,
            zoom_prob=config.zoom_prob,
            noise_prob=config.noise_prob,
        )


class AugmentationEngine:
    """Produces one randomised variant of an image per call.

    The engine owns its random source; pass a seeded
    ``numpy.random.Generator`` for reproducible variants.
    """

    def __init__(
        self,
        policy: Optional[AugmentationPolicy] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.policy = policy or AugmentationPolicy()
        self._rng = rng if rng is not None else np.random.default_rng()

    def augment(self, image: np.ndarray) -> np.ndarray:
        """Return an augmented copy of *image* (``H×W×C`` uint8). Never mutates it."""
        p = self.policy
        out = np.array(image, dtype=np.uint8, copy=True)

        # ── Geometric ───────────────────────────────────────────────────
        if self._fires(p.flip_prob):
            out = np.ascontiguousarray(out[:, ::-1])

        if self._fires(p.rotation_prob):
            angle = self._rng.uniform(-p.max_rotation, p.max_rotation)
            out = _rotate(out, math.degrees(angle))

        if self._fires(p.zoom_prob):
            scale = self._rng.uniform(*p.zoom_range)
            out = self._zoom(out, scale)

        # ── Photometric ─────────────────────────────────────────────────
        pixels = out.astype(np.float32)

        if self._fires(p.brightness_prob):
            pixels += self._rng.uniform(-p.brightness_delta, p.brightness_delta)

        if self._fires(p.noise_prob):
            pixels += self._rng.normal(0.0, p.noise_std, size=pixels.shape).astype(np.float32)

        return np.clip(pixels, 0, 255).astype(np.uint8)

    # -- internals --

    def _fires(self, prob: float) -> bool:
        return self._rng.random() < prob

    def _zoom(self, image: np.ndarray, scale: float) -> np.ndarray:
        h, w = image.shape[:2]
        crop_h = max(1, int(round(h * scale)))
        crop_w = max(1, int(round(w * scale)))
        top = int(self._rng.integers(0, h - crop_h + 1))
        left = int(self._rng.integers(0, w - crop_w + 1))
        window = image[top:top + crop_h, left:left + crop_w]
        resized = Image.fromarray(window).resize((w, h), Image.Resampling.BILINEAR)
        return np.asarray(resized, dtype=np.uint8)


def _rotate(image: np.ndarray, degrees: float) -> np.ndarray:
    rotated = Image.fromarray(image).rotate(degrees, resample=Image.Resampling.BILINEAR)
    return np.asarray(rotated, dtype=np.uint8)
