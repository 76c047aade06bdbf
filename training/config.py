"""
Training configuration and paths.

All tuneable settings live here so they are easy to find, review,
and override without touching training logic.

Directory conventions
---------------------
::

    <SNAPCLASS_DATA_DIR>/
    ├── db.sqlite3                    ← Sample rows
    ├── media/
    │   └── uploads/                  ← Captured sample images
    └── models/
        ├── mobilenet_v2_..._no_top.h5  ← Frozen extractor weights (optional)
        └── current/                  ← Best checkpoint for the current label set
            ├── model.keras           ← Classification head weights
            ├── labels.json           ← Sorted label list
            └── meta.json             ← bestValAcc / bestEpoch / …
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from django.conf import settings

from .errors import ValidationError

# ── Paths ───────────────────────────────────────────────────────────────────

MODELS_ROOT: Path = Path(settings.MODELS_ROOT)
CHECKPOINT_DIR: Path = MODELS_ROOT / "current"

# MobileNetV2 ImageNet weights (notop); Keras downloads them if missing
EXTRACTOR_WEIGHTS_PATH: Path = (
    MODELS_ROOT / "mobilenet_v2_weights_tf_dim_ordering_tf_kernels_1.0_224_no_top.h5"
)

# Keys sent by the web client, mapped onto dataclass fields
_CLIENT_KEYS = {
    "batchSize": "batch_size",
    "validationSplit": "validation_split",
    "learningRate": "learning_rate",
    "useIncremental": "use_incremental",
    "denseUnits": "dense_units",
    "dropoutRate": "dropout_rate",
    "l2Rate": "l2_rate",
}


@dataclass(frozen=True)
class TrainingConfig:
    """All hyperparameters and settings for a single training session.

    The classification head sits on top of frozen MobileNetV2 embeddings::

        Dense(dense_units, relu, l2=l2_rate) → Dropout(dropout_rate) → Dense(N, softmax)

    The config is frozen: one instance lives for exactly one session.

    Attributes
    ----------
    epochs : int
        Number of epochs to run. There is no early stopping.
    batch_size : int
        Mini-batch size for ``fit``.
    validation_split : float
        Fraction (0, 1) of the shuffled rows held out for ``val_acc``.
    learning_rate : float
        Initial Adam learning rate; decayed on validation plateaus.
    use_incremental : bool
        Continue the persisted head when the label set is unchanged.
    dense_units, dropout_rate, l2_rate
        Head hyperparameters for a freshly built model.
    lr_patience : int
        Non-improving epochs tolerated before the learning rate halves.
    min_learning_rate : float
        The learning rate is never decayed below this floor.
    extraction_batch_size : int
        Images per forward pass of the frozen extractor.
    seed : int | None
        Seed for augmentation and shuffling (``None`` → nondeterministic).
    """

    # ── Fit loop ────────────────────────────────────────────────────────
    epochs: int = 20
    batch_size: int = 16
    validation_split: float = 0.2
    learning_rate: float = 1e-3
    use_incremental: bool = False

    # ── Head architecture ───────────────────────────────────────────────
    dense_units: int = 128
    dropout_rate: float = 0.4
    l2_rate: float = 1e-4

    # ── Learning-rate decay ─────────────────────────────────────────────
    lr_patience: int = 3
    min_learning_rate: float = 1e-6

    # ── Feature extraction ──────────────────────────────────────────────
    extraction_batch_size: int = 50
    image_size: Tuple[int, int] = (224, 224)

    # ── Augmentation probabilities ──────────────────────────────────────
    flip_prob: float = 0.5
    brightness_prob: float = 0.5
    rotation_prob: float = 0.5
    zoom_prob: float = 0.5
    noise_prob: float = 0.4

    seed: Optional[int] = None

    # ── Helpers ──────────────────────────────────────────────────────────

    def validate(self) -> "TrainingConfig":
        """Check value ranges; return ``self`` so calls can be chained.

        Raises
        ------
        ValidationError
            On the first out-of-range value.
        """
        if self.epochs <= 0:
            raise ValidationError(f"epochs must be positive, got {self.epochs}.")
        if self.batch_size <= 0:
            raise ValidationError(f"batch_size must be positive, got {self.batch_size}.")
        if not 0.0 < self.validation_split < 1.0:
            raise ValidationError(
                f"validation_split must be in (0, 1), got {self.validation_split}."
            )
        if self.learning_rate <= 0:
            raise ValidationError(
                f"learning_rate must be positive, got {self.learning_rate}."
            )
        if self.dense_units <= 0:
            raise ValidationError(f"dense_units must be positive, got {self.dense_units}.")
        if not 0.0 <= self.dropout_rate < 1.0:
            raise ValidationError(
                f"dropout_rate must be in [0, 1), got {self.dropout_rate}."
            )
        if self.l2_rate < 0:
            raise ValidationError(f"l2_rate must be >= 0, got {self.l2_rate}.")
        if self.lr_patience <= 0:
            raise ValidationError(f"lr_patience must be positive, got {self.lr_patience}.")
        if self.extraction_batch_size <= 0:
            raise ValidationError(
                f"extraction_batch_size must be positive, got {self.extraction_batch_size}."
            )
        for name in ("flip_prob", "brightness_prob", "rotation_prob", "zoom_prob", "noise_prob"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValidationError(f"{name} must be in [0, 1], got {value}.")
        return self

    @classmethod
    def from_request(cls, data: Optional[Dict[str, Any]]) -> "TrainingConfig":
        """Build a validated config from a request body.

        Accepts both the web client's camelCase keys (``batchSize``,
        ``useIncremental`` …) and the dataclass field names.

        Raises
        ------
        ValidationError
            On unknown keys, wrong types, or out-of-range values.
        """
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in (data or {}).items():
            name = _CLIENT_KEYS.get(key, key)
            if name not in known:
                raise ValidationError(f"Unknown training option '{key}'.")
            kwargs[name] = value

        try:
            if "image_size" in kwargs:
                kwargs["image_size"] = tuple(kwargs["image_size"])
            config = cls(**kwargs)
        except TypeError as exc:
            raise ValidationError(f"Bad config: {exc}") from exc

        try:
            return config.validate()
        except TypeError as exc:
            # e.g. a string where a number was expected
            raise ValidationError(f"Bad config: {exc}") from exc

    def to_dict(self) -> dict:
        """Serialise to a JSON-safe dict (echoed back by the start endpoint)."""
        data = asdict(self)
        data["image_size"] = list(self.image_size)
        return data
