"""
Database models for the SnapClass capture app.

Models
------
Sample – One captured, labelled image awaiting (or used in) training.

Status flow::

    active   ← captured from the dataset page
    pending  ← uploaded as a user correction, waiting for the next session
    trained  ← consumed by a completed training session

The image bytes live in Django's default storage (``MEDIA_ROOT/uploads``);
``image_ref`` is the storage name.
"""

from django.db import models
from django.utils import timezone

from training.types import Sample as SampleRecord


class Sample(models.Model):
    """A labelled training image."""

    STATUS_CHOICES = [
        ('active', 'Active'),
        ('pending', 'Pending'),
        ('trained', 'Trained'),
    ]

    image_ref = models.CharField(
        max_length=500,
        help_text='Storage name of the image, e.g. "uploads/<uuid>.jpg".',
    )
    label = models.CharField(max_length=150, db_index=True)
    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default='active', db_index=True,
    )
    confidence_at_capture = models.FloatField(
        null=True, blank=True,
        help_text='Model confidence when a correction sample was captured.',
    )
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = 'samples'
        ordering = ['created_at', 'id']
        verbose_name = 'Sample'
        verbose_name_plural = 'Samples'

    def __str__(self) -> str:
        return f"{self.label} ({self.status}) – {self.image_ref}"

    def to_record(self) -> SampleRecord:
        """Convert to the plain record the training stack works with."""
        return SampleRecord(
            id=self.pk,
            image_ref=self.image_ref,
            label=self.label,
            status=self.status,
            confidence_at_capture=self.confidence_at_capture,
            created_at=self.created_at,
        )
