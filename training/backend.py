"""
Keras backend for the trainable classification head.

Head architecture::

    Input(D)                              ← frozen-extractor embedding
      → Dense(dense_units, relu, l2)      ← variance-scaling init
      → Dropout(dropout_rate)
      → Dense(num_classes, softmax)

Compiled with Adam + categorical cross-entropy, metric ``accuracy``.

``fit`` is a generator: it runs one Keras epoch per step and yields an
``EpochResult``, so the caller can update status, checkpoint, and adjust
the learning rate between epochs without Keras callbacks.
"""

from __future__ import annotations

import gc
import logging
from pathlib import Path
from typing import Iterator, Optional

import numpy as np
import tensorflow as tf
from tensorflow.keras.layers import Dense, Dropout, Input
from tensorflow.keras.models import Sequential, load_model
from tensorflow.keras.optimizers import Adam
from tensorflow.keras.regularizers import l2

from .errors import TrainingError
from .types import EpochResult

logger = logging.getLogger(__name__)


class KerasBackend:
    """Builds, compiles, fits, saves and loads the classification head."""

    # ═══════════════════════════════════════════════════════════════════
    # Model building
    # ═══════════════════════════════════════════════════════════════════

    def build(self, input_dim: int, num_classes: int, config) -> tf.keras.Model:
        """Build a fresh, uncompiled head for ``num_classes`` outputs."""
        try:
            model = Sequential(
                [
                    Input(shape=(input_dim,)),
                    Dense(
                        config.dense_units,
                        activation="relu",
                        kernel_initializer="variance_scaling",
                        kernel_regularizer=l2(config.l2_rate),
                    ),
                    Dropout(config.dropout_rate),
                    Dense(num_classes, activation="softmax", name="probs"),
                ],
                name="snapclass_head",
            )
        except (ValueError, TypeError) as exc:
            raise TrainingError(f"Could not build model: {exc}") from exc

        logger.info(
            "Built head: %d → Dense(%d) → Dropout(%.2f) → %d classes",
            input_dim, config.dense_units, config.dropout_rate, num_classes,
        )
        return model

    def compile(self, model: tf.keras.Model, learning_rate: float) -> None:
        model.compile(
            optimizer=Adam(learning_rate=learning_rate),
            loss="categorical_crossentropy",
            metrics=["accuracy"],
        )

    def set_learning_rate(self, model: tf.keras.Model, learning_rate: float) -> None:
        model.optimizer.learning_rate.assign(learning_rate)

    # ═══════════════════════════════════════════════════════════════════
    # Fit loop
    # ═══════════════════════════════════════════════════════════════════

    def fit(
        self,
        model: tf.keras.Model,
        xs: np.ndarray,
        ys: np.ndarray,
        config,
    ) -> Iterator[EpochResult]:
        """Yield one ``EpochResult`` per epoch, ``config.epochs`` in total.

        Rows are shuffled each epoch; the validation rows are the trailing
        ``validation_split`` fraction of ``xs`` (Keras semantics), so the
        caller shuffles once beforehand.

        Raises
        ------
        TrainingError
            If Keras fails during an epoch or reports no validation accuracy.
        """
        for epoch in range(config.epochs):
            try:
                history = model.fit(
                    xs,
                    ys,
                    batch_size=config.batch_size,
                    epochs=epoch + 1,
                    initial_epoch=epoch,
                    validation_split=config.validation_split,
                    shuffle=True,
                    verbose=0,
                )
            except (tf.errors.OpError, ValueError, RuntimeError) as exc:
                raise TrainingError(f"fit failed at epoch {epoch + 1}: {exc}") from exc

            yield epoch_result(epoch + 1, history.history)

    # ═══════════════════════════════════════════════════════════════════
    # Persistence
    # ═══════════════════════════════════════════════════════════════════

    def save(self, model: tf.keras.Model, path: Path) -> None:
        model.save(str(path))

    def load(self, path: Path) -> tf.keras.Model:
        return load_model(str(path), compile=False)

    def output_classes(self, model: tf.keras.Model) -> int:
        return int(model.output_shape[-1])

    def predict(self, model: tf.keras.Model, xs: np.ndarray) -> np.ndarray:
        return np.asarray(model(xs, training=False), dtype=np.float32)

    def release(self) -> None:
        """Collect the tensors of models the caller has already dropped.

        Callers clear their own references first; a model still reachable
        from anywhere else is left alone.
        """
        gc.collect()


def epoch_result(epoch: int, logs: dict) -> EpochResult:
    """Turn one epoch of Keras history into an ``EpochResult``.

    Raises ``TrainingError`` if ``val_accuracy`` is missing.
    """
    if not logs.get("val_accuracy"):
        raise TrainingError(
            f"epoch {epoch} produced no val_accuracy; is the validation split empty?"
        )
    return EpochResult(
        epoch=epoch,
        loss=float(logs["loss"][-1]),
        acc=float(logs["accuracy"][-1]),
        val_acc=float(logs["val_accuracy"][-1]),
        val_loss=_last(logs, "val_loss"),
    )


def _last(logs: dict, key: str) -> Optional[float]:
    values = logs.get(key)
    return float(values[-1]) if values else None
