"""
View package for the SnapClass capture app.

Modules
-------
helpers.py      – JSON body parsing, base64 images, sample serialisation.
dataset_api.py  – Sample capture / listing / deletion APIs.
training_api.py – Start a training session and poll its status.
prediction.py   – Classify an image with the current best model.
"""

# Re-export all views so urls.py can do: from .views import api_dataset, …
from .dataset_api import (                                            # noqa: F401
    api_dataset,
    api_dataset_delete,
    api_dataset_delete_label,
    api_mark_trained,
    api_pending_data,
    api_upload_sample,
)
from .prediction import api_predict                                   # noqa: F401
from .training_api import api_train_start, api_train_status           # noqa: F401
