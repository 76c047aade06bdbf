"""
Pollable training progress.

``TrainingStatus`` is written only by the orchestrator's session thread
and read by anyone. There is no lock: every field is replaced by a
single assignment, so a reader may see a snapshot that is a little
stale, never a half-written value. ``history`` is append-only within a
session and copied on read.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .types import EpochResult, history_entry


@dataclass
class TrainingStatus:
    phase: str = "idle"
    epoch: int = 0
    total_epochs: int = 0
    loss: float = 0.0
    acc: float = 0.0
    val_acc: float = 0.0
    best_val_acc: float = 0.0
    best_epoch: int = 0
    best_loss: float = 0.0
    best_acc: float = 0.0
    learning_rate: float = 0.0
    history: List[Dict[str, Any]] = field(default_factory=list)
    processed: int = 0
    total_samples: int = 0
    skipped: int = 0
    labels: List[str] = field(default_factory=list)
    incremental: bool = False
    error: Optional[str] = None
    error_kind: Optional[str] = None

    def record_epoch(self, result: EpochResult) -> None:
        self.epoch = result.epoch
        self.loss = result.loss
        self.acc = result.acc
        self.val_acc = result.val_acc
        self.history.append(history_entry(result))

    def to_dict(self) -> Dict[str, Any]:
        """Serialise with the wire keys the web client polls for."""
        data = {
            "phase": self.phase,
            "epoch": self.epoch,
            "totalEpochs": self.total_epochs,
            "loss": self.loss,
            "acc": self.acc,
            "val_acc": self.val_acc,
            "bestValAcc": self.best_val_acc,
            "bestEpoch": self.best_epoch,
            "bestLoss": self.best_loss,
            "bestAcc": self.best_acc,
            "learningRate": self.learning_rate,
            "history": list(self.history),
            "processed": self.processed,
            "totalSamples": self.total_samples,
            "skipped": self.skipped,
            "labels": list(self.labels),
            "incremental": self.incremental,
        }
        if self.error is not None:
            data["error"] = self.error
            data["errorKind"] = self.error_kind
        return data


class StatusReporter:
    """Non-blocking read path over the current session's status."""

    def __init__(self, is_training: Callable[[], bool]):
        self._is_training = is_training
        self.status = TrainingStatus()

    def begin(self, total_epochs: int, total_samples: int, learning_rate: float) -> TrainingStatus:
        """Replace the status with a fresh ``processing`` record for a new session."""
        self.status = TrainingStatus(
            phase="processing",
            total_epochs=total_epochs,
            total_samples=total_samples,
            learning_rate=learning_rate,
        )
        return self.status

    def snapshot(self) -> Dict[str, Any]:
        data = self.status.to_dict()
        data["isTraining"] = self._is_training()
        return data
