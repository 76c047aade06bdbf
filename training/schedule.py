"""
Learning-rate decay on validation-accuracy plateaus.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class PlateauDecay:
    """Halve the learning rate after ``patience`` epochs without improvement.

    Tracks the best ``val_acc`` seen *in the current session* only. A
    decay that would take the rate below ``floor`` is skipped, but the
    patience counter still resets.
    """

    def __init__(
        self,
        learning_rate: float,
        *,
        patience: int = 3,
        factor: float = 0.5,
        floor: float = 1e-6,
    ):
        self.learning_rate = learning_rate
        self.patience = patience
        self.factor = factor
        self.floor = floor
        self.best_val_acc = float("-inf")
        self.wait = 0

    def step(self, val_acc: float) -> bool:
        """Record one epoch's ``val_acc``; return True if the rate changed."""
        if val_acc > self.best_val_acc:
            self.best_val_acc = val_acc
            self.wait = 0
            return False

        self.wait += 1
        if self.wait < self.patience:
            return False

        self.wait = 0
        decayed = self.learning_rate * self.factor
        if decayed < self.floor:
            logger.debug("LR decay skipped: %.2e would cross floor %.2e", decayed, self.floor)
            return False

        logger.info("val_acc plateaued; learning rate %.2e → %.2e", self.learning_rate, decayed)
        self.learning_rate = decayed
        return True
