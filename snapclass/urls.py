"""
Root URL configuration for the SnapClass project.

The JSON API lives under ``/api/`` (see ``capture.urls``); uploaded
sample images are served from ``/media/`` in development.
"""

from django.conf import settings
from django.conf.urls.static import static
from django.urls import include, path

urlpatterns = [
    path("api/", include("capture.urls")),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
