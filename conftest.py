"""
Shared test doubles and fixtures.

The doubles stand in for the three heavy collaborators of the
orchestrator so sessions run in milliseconds:

InMemorySampleStore – dict-backed sample store with Django-style lookups.
FakeExtractor       – per-channel colour statistics as "embeddings".
ScriptedBackend     – fit yields scripted val_acc values; save/load via JSON.
"""

import io
import json
import threading
from datetime import datetime, timedelta, timezone
from itertools import count

import numpy as np
import pytest
from PIL import Image

from training.checkpoint import CheckpointStore
from training.config import TrainingConfig
from training.errors import ExtractorError, TrainingError
from training.orchestrator import TrainingOrchestrator
from training.types import EpochResult, Sample

SESSION_TIMEOUT = 10.0


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------

COLOURS = {
    "red": (200, 20, 20),
    "green": (20, 200, 20),
    "blue": (20, 20, 200),
}


def png_bytes(colour=(200, 20, 20), size=(16, 16)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, colour).save(buf, "PNG")
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Sample store
# ---------------------------------------------------------------------------

def _matches(sample: Sample, filter) -> bool:
    for key, expected in (filter or {}).items():
        if key.endswith("__in"):
            if getattr(sample, key[:-4]) not in expected:
                return False
        elif getattr(sample, key) != expected:
            return False
    return True


class InMemorySampleStore:
    def __init__(self):
        self.samples = {}
        self.images = {}
        self._ids = count(1)
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def add(self, label, status="active", image=None, image_ref=None):
        """Insert a sample plus its image bytes (``image=False`` → no file)."""
        sample_id = next(self._ids)
        ref = image_ref or f"uploads/{sample_id}.png"
        if image is not False:
            self.images[ref] = image if image is not None else png_bytes(COLOURS.get(label, (90, 90, 90)))
        return self.insert({"id": sample_id, "image_ref": ref, "label": label, "status": status})

    def find(self, filter=None):
        rows = [s for s in self.samples.values() if _matches(s, filter)]
        return sorted(rows, key=lambda s: (s.created_at, s.id))

    def insert(self, doc):
        doc = dict(doc)
        doc.setdefault("id", next(self._ids))
        self._clock += timedelta(seconds=1)
        doc.setdefault("created_at", self._clock)
        sample = Sample(**doc)
        self.samples[sample.id] = sample
        return sample

    def update(self, filter, patch, multi=False):
        targets = self.find(filter)
        if not multi:
            targets = targets[:1]
        for sample in targets:
            fields = {**sample.__dict__, **patch}
            self.samples[sample.id] = Sample(**fields)
        return len(targets)

    def remove(self, filter, multi=False):
        targets = self.find(filter)
        if not multi:
            targets = targets[:1]
        for sample in targets:
            del self.samples[sample.id]
        return len(targets)

    def read_image(self, image_ref):
        try:
            return self.images[image_ref]
        except KeyError:
            raise FileNotFoundError(image_ref) from None

    def statuses(self):
        return {s.id: s.status for s in self.samples.values()}


# ---------------------------------------------------------------------------
# Frozen extractor
# ---------------------------------------------------------------------------

class FakeExtractor:
    """Embedding = per-channel mean and std scaled to [0, 1] (6 dims)."""

    dimension = 6

    def __init__(self, fail_load=False):
        self.fail_load = fail_load
        self.load_calls = 0
        self.batches = []

    def load(self):
        self.load_calls += 1
        if self.fail_load:
            raise ExtractorError("Feature extractor unavailable after 3 attempts: offline")

    def infer(self, images):
        images = np.asarray(images, dtype=np.float32)
        self.batches.append(images.shape[0])
        means = images.mean(axis=(1, 2)) / 255.0
        stds = images.std(axis=(1, 2)) / 255.0
        return np.concatenate([means, stds], axis=1).astype(np.float32)


# ---------------------------------------------------------------------------
# Model backend
# ---------------------------------------------------------------------------

class FakeModel:
    _ids = count(1)

    def __init__(self, input_dim, num_classes, loaded_from=None):
        self.id = next(self._ids)
        self.input_dim = input_dim
        self.num_classes = num_classes
        self.loaded_from = loaded_from
        self.learning_rate = None


class ScriptedBackend:
    """Backend whose ``fit`` replays a scripted sequence of val_acc values.

    ``gate`` (if given) blocks ``fit`` before the first epoch until set;
    ``started`` is set as soon as ``fit`` is entered. ``fail_at`` raises
    ``TrainingError`` at that 1-based epoch; ``fail_save`` makes ``save``
    raise ``OSError``.
    """

    def __init__(self, val_accs=(0.5, 0.6, 0.7, 0.8, 0.9), gate=None, fail_at=None):
        self.val_accs = list(val_accs)
        self.gate = gate
        self.fail_at = fail_at
        self.fail_save = False
        self.started = threading.Event()
        self.built = []
        self.loaded = []
        self.saved = []
        self.release_calls = 0
        self.lr_changes = []
        self.compiled_with = []
        self.fit_rows = None

    def build(self, input_dim, num_classes, config):
        model = FakeModel(input_dim, num_classes)
        self.built.append(model)
        return model

    def compile(self, model, learning_rate):
        model.learning_rate = learning_rate
        self.compiled_with.append(learning_rate)

    def set_learning_rate(self, model, learning_rate):
        model.learning_rate = learning_rate
        self.lr_changes.append(learning_rate)

    def fit(self, model, xs, ys, config):
        self.started.set()
        self.fit_rows = (xs.shape, ys.shape)
        if self.gate is not None:
            assert self.gate.wait(SESSION_TIMEOUT), "test gate never opened"
        for epoch in range(1, config.epochs + 1):
            if self.fail_at == epoch:
                raise TrainingError(f"fit failed at epoch {epoch}: boom")
            val_acc = self.val_accs[min(epoch, len(self.val_accs)) - 1]
            yield EpochResult(
                epoch=epoch,
                loss=1.0 / epoch,
                acc=min(1.0, val_acc + 0.05),
                val_acc=val_acc,
                val_loss=1.0 - val_acc,
            )

    def save(self, model, path):
        if self.fail_save:
            raise OSError("disk full")
        path.write_text(json.dumps({
            "input_dim": model.input_dim,
            "num_classes": model.num_classes,
            "model_id": model.id,
        }))
        self.saved.append(model.id)

    def load(self, path):
        data = json.loads(path.read_text())
        model = FakeModel(data["input_dim"], data["num_classes"], loaded_from=data["model_id"])
        self.loaded.append(model)
        return model

    def output_classes(self, model):
        return model.num_classes

    def predict(self, model, xs):
        probs = np.zeros((len(xs), model.num_classes), dtype=np.float32)
        probs[:, 0] = 0.7
        probs[:, 1:] = 0.3 / max(1, model.num_classes - 1)
        return probs

    def release(self):
        self.release_calls += 1


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def store():
    return InMemorySampleStore()


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def backend():
    return ScriptedBackend()


@pytest.fixture
def checkpoints(tmp_path, backend):
    return CheckpointStore(tmp_path / "models" / "current", backend)


@pytest.fixture
def orchestrator(store, extractor, backend, checkpoints):
    return TrainingOrchestrator(store, extractor, backend, checkpoints)


@pytest.fixture
def fast_config():
    def make(**overrides):
        params = {"epochs": 5, "image_size": (16, 16), "seed": 0, "extraction_batch_size": 4}
        params.update(overrides)
        return TrainingConfig(**params)
    return make


def run_session(orchestrator, config):
    """Start a session and wait for it to finish."""
    session = orchestrator.start(config)
    assert session.wait(SESSION_TIMEOUT), "training session did not finish"
    return session
