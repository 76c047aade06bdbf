"""
Control surface for training sessions: start (fire-and-forget) and status.

The process-wide orchestrator is built lazily on first use from the
project settings: the ORM sample store, the MobileNetV2 extractor, the
Keras backend, and the checkpoint directory under ``MODELS_ROOT``.
Tests and scripts can install their own with :func:`set_orchestrator`.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from .config import CHECKPOINT_DIR, EXTRACTOR_WEIGHTS_PATH, TrainingConfig
from .orchestrator import TrainingOrchestrator, TrainingSession

logger = logging.getLogger(__name__)

_orchestrator: Optional[TrainingOrchestrator] = None
_orchestrator_lock = threading.Lock()


def build_default_orchestrator() -> TrainingOrchestrator:
    """Wire the production collaborators together."""
    from capture.store import DjangoSampleStore
    from .backend import KerasBackend
    from .checkpoint import CheckpointStore
    from .extractor import MobileNetV2Extractor

    backend = KerasBackend()
    return TrainingOrchestrator(
        store=DjangoSampleStore(),
        extractor=MobileNetV2Extractor(EXTRACTOR_WEIGHTS_PATH),
        backend=backend,
        checkpoints=CheckpointStore(CHECKPOINT_DIR, backend),
    )


def get_orchestrator() -> TrainingOrchestrator:
    global _orchestrator
    with _orchestrator_lock:
        if _orchestrator is None:
            _orchestrator = build_default_orchestrator()
            logger.info("Training orchestrator initialised (checkpoints in %s)", CHECKPOINT_DIR)
        return _orchestrator


def set_orchestrator(orchestrator: Optional[TrainingOrchestrator]) -> None:
    """Replace the process-wide orchestrator (``None`` → rebuild on next use)."""
    global _orchestrator
    with _orchestrator_lock:
        _orchestrator = orchestrator


def start_training(config: Optional[TrainingConfig] = None) -> TrainingSession:
    """Launch a training session in the background.

    Raises ``ValidationError`` / ``ConcurrencyError`` synchronously when
    the session is rejected; every later failure is reported only
    through :func:`get_status`.
    """
    return get_orchestrator().start(config)


def is_training_running() -> bool:
    """Return True if a training session is currently in progress."""
    return get_orchestrator().is_training()


def get_status() -> dict:
    """Return the current status snapshot (never blocks)."""
    return get_orchestrator().snapshot()
