"""
Plain data types shared by the training stack.

Nothing here imports Django or TensorFlow, so the
orchestrator can be driven entirely by test doubles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence


@dataclass(frozen=True)
class Sample:
    """One labelled image as seen by the training stack."""

    id: Any
    image_ref: str
    label: str
    status: str = "active"
    confidence_at_capture: Optional[float] = None
    created_at: Optional[datetime] = None

    @property
    def is_eligible(self) -> bool:
        """A sample can be trained on only with both a label and an image."""
        return bool(self.label) and bool(self.image_ref)


@dataclass(frozen=True)
class EpochResult:
    """Metrics for one completed epoch (``epoch`` is 1-based)."""

    epoch: int
    loss: float
    acc: float
    val_acc: float
    val_loss: Optional[float] = None


@dataclass
class CheckpointMetadata:
    """Best-known performance record for one label set.

    ``best_val_acc`` only ever grows for a given ``label_set``; a
    different label set starts again from :meth:`zero`.
    """

    label_set: List[str]
    best_val_acc: float = 0.0
    best_epoch: int = 0
    best_loss: float = 0.0
    best_acc: float = 0.0
    updated_at: Optional[str] = None

    @classmethod
    def zero(cls, label_set: Iterable[str]) -> "CheckpointMetadata":
        return cls(label_set=unique_labels(label_set))

    def matches(self, label_set: Iterable[str]) -> bool:
        return self.label_set == unique_labels(label_set)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "labelSet": list(self.label_set),
            "bestValAcc": self.best_val_acc,
            "bestEpoch": self.best_epoch,
            "bestLoss": self.best_loss,
            "bestAcc": self.best_acc,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CheckpointMetadata":
        return cls(
            label_set=unique_labels(data.get("labelSet") or []),
            best_val_acc=float(data.get("bestValAcc", 0.0)),
            best_epoch=int(data.get("bestEpoch", 0)),
            best_loss=float(data.get("bestLoss", 0.0)),
            best_acc=float(data.get("bestAcc", 0.0)),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class ExtractionResult:
    """Output of the feature extraction pipeline.

    ``embeddings[i]`` belongs to ``labels[i]``; each usable sample
    contributes two rows (original + augmented variant).
    """

    embeddings: Any
    labels: List[str]
    skipped: int = 0
    consumed_ids: List[Any] = field(default_factory=list)

    @property
    def num_rows(self) -> int:
        return len(self.labels)


def unique_labels(labels: Iterable[str]) -> List[str]:
    """Sorted, deduplicated label list; independent of input order."""
    return sorted(set(labels))


class SampleStore(Protocol):
    """Narrow interface to wherever samples and their images live."""

    def find(self, filter: Optional[Dict[str, Any]] = None) -> List[Sample]: ...

    def insert(self, doc: Dict[str, Any]) -> Sample: ...

    def update(self, filter: Dict[str, Any], patch: Dict[str, Any], multi: bool = False) -> int: ...

    def remove(self, filter: Dict[str, Any], multi: bool = False) -> int: ...

    def read_image(self, image_ref: str) -> bytes: ...


def history_entry(result: EpochResult) -> Dict[str, Any]:
    return {
        "epoch": result.epoch,
        "loss": result.loss,
        "acc": result.acc,
        "val_acc": result.val_acc,
    }


def label_indices(labels: Sequence[str], label_set: Sequence[str]) -> List[int]:
    index = {name: idx for idx, name in enumerate(label_set)}
    return [index[name] for name in labels]
