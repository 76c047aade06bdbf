"""JSON endpoints: dataset, corrections, training control, prediction."""

import base64
import json

import pytest
from django.urls import reverse

from capture.models import Sample
from capture.predictor import Predictor, set_predictor
from conftest import SESSION_TIMEOUT, FakeExtractor, png_bytes
from training.tasks import is_training_running, set_orchestrator
from training.types import CheckpointMetadata

pytestmark = pytest.mark.django_db


@pytest.fixture(autouse=True)
def media(settings, tmp_path):
    settings.MEDIA_ROOT = str(tmp_path / "media")
    return tmp_path / "media"


@pytest.fixture
def installed(orchestrator):
    set_orchestrator(orchestrator)
    yield orchestrator
    session = orchestrator.session
    if session is not None:
        session.wait(SESSION_TIMEOUT)
    set_orchestrator(None)


@pytest.fixture
def predictor(checkpoints, backend):
    p = Predictor(FakeExtractor(), checkpoints, backend, image_size=(16, 16))
    set_predictor(p)
    yield p
    set_predictor(None)


def b64_image(colour=(200, 20, 20), data_url=False):
    encoded = base64.b64encode(png_bytes(colour)).decode()
    return f"data:image/png;base64,{encoded}" if data_url else encoded


def post_json(client, name, body):
    return client.post(reverse(name), data=json.dumps(body), content_type="application/json")


# ---------------------------------------------------------------------------
# Dataset
# ---------------------------------------------------------------------------

def test_capture_sample(client, media):
    resp = post_json(client, "api_dataset", {"image": b64_image(), "label": " cat "})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["label"] == "cat"
    assert data["status"] == "active"
    assert data["imageUrl"].startswith("/media/uploads/")
    assert data["image"].startswith("http://testserver/media/uploads/")

    row = Sample.objects.get(pk=data["id"])
    assert (media / row.image_ref).exists()


def test_capture_accepts_data_url(client):
    resp = post_json(client, "api_dataset", {"image": b64_image(data_url=True), "label": "dog"})
    assert resp.status_code == 200


@pytest.mark.parametrize("body", [
    {"label": "cat"},
    {"image": b64_image()},
    {"image": b64_image(), "label": "   "},
    {"image": "not base64!!", "label": "cat"},
    {"image": base64.b64encode(b"plain text").decode(), "label": "cat"},
])
def test_capture_rejects_bad_input(client, body):
    resp = post_json(client, "api_dataset", body)
    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert Sample.objects.count() == 0


def test_capture_rejects_malformed_json(client):
    resp = client.post(reverse("api_dataset"), data="{", content_type="application/json")
    assert resp.status_code == 400


def test_list_is_newest_first(client):
    for label in ("a", "b", "c"):
        post_json(client, "api_dataset", {"image": b64_image(), "label": label})
    resp = client.get(reverse("api_dataset"))
    assert [s["label"] for s in resp.json()["data"]] == ["c", "b", "a"]


def test_delete_sample(client, media):
    sample_id = post_json(client, "api_dataset", {"image": b64_image(), "label": "cat"}).json()["data"]["id"]
    ref = Sample.objects.get(pk=sample_id).image_ref

    resp = client.delete(reverse("api_dataset_delete", args=[sample_id]))
    assert resp.status_code == 200
    assert not Sample.objects.filter(pk=sample_id).exists()
    assert not (media / ref).exists()

    assert client.delete(reverse("api_dataset_delete", args=[sample_id])).status_code == 404


def test_delete_label(client):
    for label in ("cat", "cat", "dog"):
        post_json(client, "api_dataset", {"image": b64_image(), "label": label})

    resp = client.delete(reverse("api_dataset_delete_label", args=["cat"]))
    assert resp.json() == {"success": True, "removed": 2}
    assert list(Sample.objects.values_list("label", flat=True)) == ["dog"]


def test_dataset_rejects_other_methods(client):
    assert client.put(reverse("api_dataset")).status_code == 405


# ---------------------------------------------------------------------------
# Corrections
# ---------------------------------------------------------------------------

def test_upload_sample_is_pending(client):
    resp = post_json(client, "api_upload_sample", {
        "image": b64_image(), "label": "dog", "confidence": 0.35,
    })
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "pending"
    assert data["confidence_at_capture"] == pytest.approx(0.35)


def test_upload_sample_default_confidence(client):
    data = post_json(client, "api_upload_sample", {"image": b64_image(), "label": "dog"}).json()["data"]
    assert data["confidence_at_capture"] == 0.0


def test_upload_sample_bad_confidence(client):
    resp = post_json(client, "api_upload_sample", {
        "image": b64_image(), "label": "dog", "confidence": "high",
    })
    assert resp.status_code == 400


def test_pending_data_and_mark_trained(client):
    post_json(client, "api_dataset", {"image": b64_image(), "label": "cat"})
    ids = [
        post_json(client, "api_upload_sample", {"image": b64_image(), "label": label}).json()["data"]["id"]
        for label in ("cat", "dog")
    ]

    pending = client.get(reverse("api_pending_data")).json()["data"]
    assert [s["id"] for s in pending] == ids

    resp = post_json(client, "api_mark_trained", {"ids": ids[:1]})
    assert resp.json() == {"success": True, "updated": 1}
    pending = client.get(reverse("api_pending_data")).json()["data"]
    assert [s["id"] for s in pending] == ids[1:]


def test_mark_trained_validates_ids(client):
    assert post_json(client, "api_mark_trained", {"ids": "1,2"}).status_code == 400
    assert post_json(client, "api_mark_trained", {"ids": ["a"]}).status_code == 400
    assert post_json(client, "api_mark_trained", {}).json() == {"success": True, "updated": 0}


# ---------------------------------------------------------------------------
# Training control
# ---------------------------------------------------------------------------

def test_train_start_runs_session(client, installed, store):
    for label in ("cat", "cat", "dog", "dog"):
        store.add(label, status="pending")

    resp = post_json(client, "api_train_start", {"epochs": 2, "image_size": [16, 16]})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["config"]["epochs"] == 2

    assert installed.session.wait(SESSION_TIMEOUT)
    status = client.get(reverse("api_train_status")).json()
    assert status["phase"] == "complete"
    assert status["isTraining"] is False
    assert len(status["history"]) == 2


def test_train_start_rejects_small_dataset(client, installed, store):
    store.add("cat")
    resp = post_json(client, "api_train_start", {})
    assert resp.status_code == 400
    assert client.get(reverse("api_train_status")).json()["phase"] == "idle"


def test_train_start_rejects_bad_config(client, installed):
    assert post_json(client, "api_train_start", {"epochs": 0}).status_code == 400
    assert post_json(client, "api_train_start", {"momentum": 0.9}).status_code == 400


def test_train_start_conflict(client, installed, store, backend):
    import threading

    for label in ("cat", "cat", "dog", "dog"):
        store.add(label)
    backend.gate = threading.Event()
    try:
        first = post_json(client, "api_train_start", {"epochs": 1, "image_size": [16, 16]})
        assert first.status_code == 200
        assert backend.started.wait(SESSION_TIMEOUT)

        second = post_json(client, "api_train_start", {"epochs": 1, "image_size": [16, 16]})
        assert second.status_code == 409
        assert client.get(reverse("api_train_status")).json()["isTraining"] is True
        assert is_training_running()
    finally:
        backend.gate.set()


def test_status_before_any_session(client, installed):
    status = client.get(reverse("api_train_status")).json()
    assert status["phase"] == "idle"
    assert status["isTraining"] is False
    assert status["history"] == []


# ---------------------------------------------------------------------------
# Prediction
# ---------------------------------------------------------------------------

def test_predict_without_model(client, predictor):
    resp = post_json(client, "api_predict", {"image": b64_image()})
    assert resp.status_code == 503


def test_predict_ranks_labels(client, predictor, checkpoints, backend):
    model = backend.build(FakeExtractor.dimension, 2, None)
    checkpoints.write_checkpoint(
        model, ["cat", "dog"],
        CheckpointMetadata(label_set=["cat", "dog"], best_val_acc=0.9, best_epoch=3),
    )

    resp = post_json(client, "api_predict", {"image": b64_image(data_url=True)})
    assert resp.status_code == 200
    body = resp.json()
    assert body["label"] == "cat"
    assert body["score"] == pytest.approx(0.7)
    assert [r["label"] for r in body["ranking"]] == ["cat", "dog"]


def test_predict_reloads_newer_checkpoint(client, predictor, checkpoints, backend):
    labels = ["cat", "dog"]
    checkpoints.write_checkpoint(
        backend.build(FakeExtractor.dimension, 2, None), labels,
        CheckpointMetadata(label_set=labels, best_val_acc=0.5, best_epoch=1),
    )
    post_json(client, "api_predict", {"image": b64_image()})

    labels = ["bird", "cat", "dog"]
    checkpoints.write_checkpoint(
        backend.build(FakeExtractor.dimension, 3, None), labels,
        CheckpointMetadata(label_set=labels, best_val_acc=0.4, best_epoch=1),
    )
    body = post_json(client, "api_predict", {"image": b64_image()}).json()
    assert body["label"] == "bird"
    assert len(body["ranking"]) == 3


@pytest.mark.parametrize("body", [{}, {"image": "@@@"}])
def test_predict_bad_input(client, predictor, body):
    assert post_json(client, "api_predict", body).status_code == 400
