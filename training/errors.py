"""
Exception taxonomy for training sessions.

Every error carries a short ``kind`` string that ends up in the status
snapshot as ``errorKind`` so polling clients can tell a bad dataset from
a broken extractor without parsing messages.
"""

from __future__ import annotations


class TrainingPipelineError(Exception):
    """Base class for all errors raised by the training stack."""

    kind = "internal"


class ValidationError(TrainingPipelineError):
    """The dataset or config cannot be trained on (too few samples / labels)."""

    kind = "validation"


class NoValidSamplesError(ValidationError):
    """Every sample failed to load, nothing left to extract features from."""

    def __init__(self, skipped: int):
        self.skipped = skipped
        super().__init__(f"No valid samples: all {skipped} image(s) failed to load.")


class ConcurrencyError(TrainingPipelineError):
    """A training session is already active."""

    kind = "concurrency"

    def __init__(self, message: str = "A training session is already in progress."):
        super().__init__(message)


class SampleReadError(TrainingPipelineError):
    """One sample's image could not be read or decoded. Never fatal."""

    kind = "io"


class CheckpointError(TrainingPipelineError):
    """Writing the checkpoint unit (weights, labels, metadata) failed."""

    kind = "io"


class ExtractorError(TrainingPipelineError):
    """The frozen feature extractor could not be loaded or run."""

    kind = "extractor"


class TrainingError(TrainingPipelineError):
    """Model construction or fitting failed inside the backend."""

    kind = "training"


class ModelNotReadyError(TrainingPipelineError):
    """No trained checkpoint is available for prediction yet."""

    kind = "not_ready"


def error_kind(exc: BaseException) -> str:
    """Return the taxonomy kind for *exc* (``"internal"`` if unknown)."""
    return getattr(exc, "kind", TrainingPipelineError.kind)
