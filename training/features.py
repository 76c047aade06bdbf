"""
Feature extraction — samples → (embeddings, labels) for the head.

The pipeline reads each sample's image through the sample store,
decodes it with Pillow, derives one augmented variant, and pushes both
through the frozen extractor in batches. A sample whose image cannot be
read is skipped and counted; only a dataset with *no* readable image
fails the whole pipeline.

Public API
----------
decode_image              – bytes → ``H×W×3`` uint8 array at a fixed size.
FeatureExtractionPipeline – batched extraction with skip accounting.
"""

from __future__ import annotations

import io
import logging
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image

from .augment import AugmentationEngine
from .errors import NoValidSamplesError, SampleReadError
from .types import ExtractionResult, Sample, SampleStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def decode_image(data: bytes, size: Tuple[int, int]) -> np.ndarray:
    """Decode encoded image bytes to an RGB uint8 array of ``size`` (h, w).

    Raises
    ------
    SampleReadError
        If Pillow cannot identify or decode the data.
    """
    h, w = size
    try:
        with Image.open(io.BytesIO(data)) as img:
            rgb = img.convert("RGB").resize((w, h), Image.Resampling.BILINEAR)
            return np.asarray(rgb, dtype=np.uint8)
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise SampleReadError(f"Cannot decode image: {exc}") from exc


class FeatureExtractionPipeline:
    """Turns a list of samples into a training tensor set."""

    def __init__(
        self,
        store: SampleStore,
        extractor,
        augmenter: AugmentationEngine,
        *,
        image_size: Tuple[int, int] = (224, 224),
        batch_size: int = 50,
    ):
        self.store = store
        self.extractor = extractor
        self.augmenter = augmenter
        self.image_size = image_size
        self.batch_size = batch_size

    def load_image(self, sample: Sample) -> np.ndarray:
        """Read and decode one sample's image, or raise ``SampleReadError``."""
        try:
            data = self.store.read_image(sample.image_ref)
        except OSError as exc:
            raise SampleReadError(f"Cannot read {sample.image_ref!r}: {exc}") from exc
        return decode_image(data, self.image_size)

    def extract(
        self,
        samples: Sequence[Sample],
        on_progress: Optional[ProgressCallback] = None,
    ) -> ExtractionResult:
        """Extract original + augmented embeddings for every readable sample.

        Parameters
        ----------
        samples : sequence of Sample
            Samples to process, in any order.
        on_progress : callable, optional
            Called as ``on_progress(processed, total)`` after each batch.

        Returns
        -------
        ExtractionResult
            ``embeddings`` is float32 ``(2 × usable, D)``, paired row-for-row
            with ``labels``.

        Raises
        ------
        NoValidSamplesError
            If not a single sample could be loaded.
        """
        total = len(samples)
        chunks: List[np.ndarray] = []
        labels: List[str] = []
        consumed: List = []
        skipped = 0
        processed = 0

        for start in range(0, total, self.batch_size):
            batch = samples[start:start + self.batch_size]
            images: List[np.ndarray] = []
            batch_labels: List[str] = []

            for sample in batch:
                try:
                    image = self.load_image(sample)
                except SampleReadError as exc:
                    skipped += 1
                    logger.warning("Skipping sample %s: %s", sample.id, exc)
                    continue
                images.append(image)
                images.append(self.augmenter.augment(image))
                batch_labels.extend([sample.label, sample.label])
                consumed.append(sample.id)

            if images:
                features = self.extractor.infer(np.stack(images))
                chunks.append(np.asarray(features, dtype=np.float32))
                labels.extend(batch_labels)
                del images

            processed += len(batch)
            if on_progress is not None:
                on_progress(processed, total)

        if not chunks:
            raise NoValidSamplesError(skipped)

        if skipped:
            logger.warning("Feature extraction skipped %d of %d samples", skipped, total)

        embeddings = np.concatenate(chunks, axis=0)
        logger.info(
            "Extracted %d embeddings (dim %d) from %d samples",
            embeddings.shape[0], embeddings.shape[1], len(consumed),
        )
        return ExtractionResult(
            embeddings=embeddings,
            labels=labels,
            skipped=skipped,
            consumed_ids=consumed,
        )
