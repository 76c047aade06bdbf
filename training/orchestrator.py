"""
Training session orchestrator — samples → embeddings → head → checkpoint.

One session at a time walks through::

    idle → processing → training → complete
                     ↘            ↘ error

1. ``start`` validates the config and the dataset synchronously (≥ 2
   labelled samples, ≥ 2 distinct labels) and takes the single-flight
   lock; a second ``start`` is rejected with ``ConcurrencyError``.
2. The session thread extracts original + augmented embeddings.
3. The persisted checkpoint decides the baseline (same label set →
   previous best, otherwise zero) and, with ``use_incremental``, whether
   the previous head is continued or a fresh one is built.
4. Each epoch updates the status, writes a checkpoint if ``val_acc``
   beats the best ever seen for this label set, and feeds the
   plateau learning-rate decay.
5. Consumed ``pending`` samples become ``trained``.

All collaborators are injected so each can be swapped for a test double.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import numpy as np

from .augment import AugmentationEngine, AugmentationPolicy
from .checkpoint import CheckpointStore
from .config import TrainingConfig
from .errors import ConcurrencyError, ValidationError, error_kind
from .features import FeatureExtractionPipeline
from .schedule import PlateauDecay
from .status import StatusReporter, TrainingStatus
from .types import (
    CheckpointMetadata,
    ExtractionResult,
    Sample,
    SampleStore,
    label_indices,
    unique_labels,
)

logger = logging.getLogger(__name__)


class TrainingSession:
    """Handle for one training session.

    ``active`` is True from the moment the session is accepted until it
    has released the single-flight lock; ``wait`` blocks until then.
    """

    def __init__(self, config: TrainingConfig, samples: List[Sample]):
        self.config = config
        self.samples = samples
        self.started_at = datetime.now(timezone.utc)
        self.finished_at: Optional[datetime] = None
        self.error: Optional[BaseException] = None
        self._done = threading.Event()

    @property
    def active(self) -> bool:
        return not self._done.is_set()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def succeeded(self) -> bool:
        return self.done and self.error is None

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the session ends; return False on timeout."""
        return self._done.wait(timeout)

    def _finish(self, error: Optional[BaseException] = None) -> None:
        self.error = error
        self.finished_at = datetime.now(timezone.utc)
        self._done.set()


class TrainingOrchestrator:
    """Single-flight trainer with keep-best checkpointing."""

    def __init__(
        self,
        store: SampleStore,
        extractor,
        backend,
        checkpoints: CheckpointStore,
    ):
        self.store = store
        self.extractor = extractor
        self.backend = backend
        self.checkpoints = checkpoints

        self._lock = threading.Lock()
        self._session: Optional[TrainingSession] = None
        self.reporter = StatusReporter(is_training=self.is_training)

    # ═══════════════════════════════════════════════════════════════════
    # Control surface
    # ═══════════════════════════════════════════════════════════════════

    @property
    def session(self) -> Optional[TrainingSession]:
        """The current or most recent session, if any."""
        return self._session

    @property
    def status(self) -> TrainingStatus:
        return self.reporter.status

    def is_training(self) -> bool:
        session = self._session
        return session is not None and session.active

    def start(self, config: Optional[TrainingConfig] = None) -> TrainingSession:
        """Accept a new session and run it in a background thread.

        Returns as soon as the session is accepted; the outcome is only
        visible through the status snapshot or the returned handle.

        Raises
        ------
        ValidationError
            Bad config, fewer than 2 samples, or fewer than 2 labels.
            Nothing is started and the status is left as it was.
        ConcurrencyError
            Another session holds the lock. It is not affected.
        """
        config = (config or TrainingConfig()).validate()

        if not self._lock.acquire(blocking=False):
            logger.warning("Training already in progress — refusing to start.")
            raise ConcurrencyError()

        try:
            samples = self._eligible_samples()
        except BaseException:
            self._lock.release()
            raise

        session = TrainingSession(config, samples)
        self._session = session
        self.reporter.begin(config.epochs, len(samples), config.learning_rate)

        thread = threading.Thread(
            target=self._run, args=(session,), name="training-session", daemon=True,
        )
        thread.start()
        logger.info(
            "Training session started: %d samples, %d epochs",
            len(samples), config.epochs,
        )
        return session

    def snapshot(self) -> dict:
        return self.reporter.snapshot()

    # ═══════════════════════════════════════════════════════════════════
    # Session
    # ═══════════════════════════════════════════════════════════════════

    def _eligible_samples(self) -> List[Sample]:
        samples = [s for s in self.store.find({}) if s.is_eligible]
        if len(samples) < 2:
            raise ValidationError(
                f"At least 2 labelled samples are required, found {len(samples)}."
            )
        labels = unique_labels(s.label for s in samples)
        if len(labels) < 2:
            raise ValidationError(
                f"At least 2 distinct labels are required, found {labels}."
            )
        return samples

    def _run(self, session: TrainingSession) -> None:
        status = self.reporter.status
        error: Optional[BaseException] = None
        try:
            self._train(session, status)
            status.phase = "complete"
            logger.info(
                "═══ TRAINING COMPLETE ═══ best val_acc=%.4f (epoch %d)",
                status.best_val_acc, status.best_epoch,
            )
        except Exception as exc:
            error = exc
            status.error = str(exc)
            status.error_kind = error_kind(exc)
            status.phase = "error"
            logger.exception("Training session failed")
        finally:
            self._lock.release()
            session._finish(error)

    def _train(self, session: TrainingSession, status: TrainingStatus) -> None:
        config = session.config
        rng = np.random.default_rng(config.seed)

        # ── 1. Features ─────────────────────────────────────────────────
        self.extractor.load()
        pipeline = FeatureExtractionPipeline(
            self.store,
            self.extractor,
            AugmentationEngine(AugmentationPolicy.from_config(config), rng),
            image_size=config.image_size,
            batch_size=config.extraction_batch_size,
        )

        def on_progress(processed: int, total: int) -> None:
            status.processed = processed

        extraction = pipeline.extract(session.samples, on_progress=on_progress)
        status.skipped = extraction.skipped

        label_set = unique_labels(extraction.labels)
        if len(label_set) < 2:
            raise ValidationError(
                f"Only {label_set} left after skipping unreadable images; "
                f"at least 2 distinct labels are required."
            )
        status.labels = label_set
        consumed = list(extraction.consumed_ids)

        xs, ys = _to_arrays(extraction, label_set, rng)
        del extraction

        # ── 2. Model provenance ─────────────────────────────────────────
        best = self.checkpoints.read_baseline(label_set)
        _publish_best(status, best)

        model = None
        try:
            model, incremental = self._prepare_model(config, label_set, xs.shape[1])
            status.incremental = incremental
            self.backend.compile(model, config.learning_rate)

            # ── 3. Fit loop ─────────────────────────────────────────────
            scheduler = PlateauDecay(
                config.learning_rate,
                patience=config.lr_patience,
                floor=config.min_learning_rate,
            )
            status.phase = "training"
            logger.info(
                "═══ TRAINING HEAD ═══ rows=%d labels=%s incremental=%s",
                xs.shape[0], label_set, incremental,
            )

            for result in self.backend.fit(model, xs, ys, config):
                status.record_epoch(result)
                logger.info(
                    "Epoch %d/%d: loss=%.4f acc=%.4f val_acc=%.4f",
                    result.epoch, config.epochs, result.loss, result.acc, result.val_acc,
                )

                if result.val_acc > best.best_val_acc:
                    best = self.checkpoints.write_checkpoint(
                        model,
                        label_set,
                        CheckpointMetadata(
                            label_set=label_set,
                            best_val_acc=result.val_acc,
                            best_epoch=result.epoch,
                            best_loss=result.loss,
                            best_acc=result.acc,
                        ),
                    )
                    _publish_best(status, best)

                if scheduler.step(result.val_acc):
                    self.backend.set_learning_rate(model, scheduler.learning_rate)
                    status.learning_rate = scheduler.learning_rate
        finally:
            model = None
            del xs, ys
            self.backend.release()

        # ── 4. Sample bookkeeping ───────────────────────────────────────
        updated = self.store.update(
            {"id__in": consumed, "status": "pending"},
            {"status": "trained"},
            multi=True,
        )
        logger.info("Marked %d pending sample(s) as trained", updated)

    def _prepare_model(self, config: TrainingConfig, label_set: List[str], input_dim: int):
        """Return ``(model, incremental)``: the persisted head or a fresh one."""
        if config.use_incremental:
            persisted = self.checkpoints.read_labels()
            if persisted == label_set:
                model = self.checkpoints.load_model()
                if model is not None:
                    if self.backend.output_classes(model) == len(label_set):
                        logger.info("Incremental mode: continuing previous head")
                        return model, True
                    logger.warning("Persisted head has the wrong output size; building fresh")
                    model = None
                    self.backend.release()
            else:
                logger.info(
                    "Incremental mode skipped: label set %s differs from persisted %s",
                    label_set, persisted,
                )

        return self.backend.build(input_dim, len(label_set), config), False


def _to_arrays(
    extraction: ExtractionResult,
    label_set: List[str],
    rng: np.random.Generator,
) -> Tuple[np.ndarray, np.ndarray]:
    """Shuffle rows once and one-hot encode labels against ``label_set``."""
    order = rng.permutation(extraction.num_rows)
    xs = np.asarray(extraction.embeddings, dtype=np.float32)[order]
    idx = np.asarray(label_indices(extraction.labels, label_set))[order]
    ys = np.eye(len(label_set), dtype=np.float32)[idx]
    return xs, ys


def _publish_best(status: TrainingStatus, best: CheckpointMetadata) -> None:
    status.best_val_acc = best.best_val_acc
    status.best_epoch = best.best_epoch
    status.best_loss = best.best_loss
    status.best_acc = best.best_acc
