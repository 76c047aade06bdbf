"""
URL configuration for the capture app (mounted under ``/api/``).

Route groups
------------
- Dataset API  : list / capture / delete samples, corrections.
- Training API : start a session, poll its status.
- Predict API  : classify an image with the current best model.
"""

from django.urls import path

from . import views

urlpatterns = [
    # ── Dataset ─────────────────────────────────────────────────────────
    path("dataset/", views.api_dataset, name="api_dataset"),
    path("dataset/<int:sample_id>/", views.api_dataset_delete, name="api_dataset_delete"),
    path("dataset/label/<str:label>/", views.api_dataset_delete_label, name="api_dataset_delete_label"),
    path("pending-data/", views.api_pending_data, name="api_pending_data"),
    path("mark-trained/", views.api_mark_trained, name="api_mark_trained"),
    path("upload-sample/", views.api_upload_sample, name="api_upload_sample"),

    # ── Training ────────────────────────────────────────────────────────
    path("train/", views.api_train_start, name="api_train_start"),
    path("train/status/", views.api_train_status, name="api_train_status"),

    # ── Prediction ──────────────────────────────────────────────────────
    path("predict/", views.api_predict, name="api_predict"),
]
