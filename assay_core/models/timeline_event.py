from django.conf import settings
from django.core.exceptions import PermissionDenied
from django.db import models

from .core import Sample, SampleStatus


class TimelineEvent(models.Model):
    """
    Immutable log entry for one sample status transition.

    Rows are written once and never updated or deleted.
    """

    sample = models.ForeignKey(
        Sample,
        on_delete=models.CASCADE,
        related_name="timeline",
    )
    status = models.CharField(max_length=20, choices=SampleStatus.choices)
    notes = models.TextField(blank=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="timeline_events",
    )
    timestamp = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["timestamp", "id"]
        indexes = [
            models.Index(fields=["sample", "timestamp"], name="timeline_sample_ts_idx"),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise PermissionDenied("Timeline events are append-only.")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise PermissionDenied("Timeline events are append-only.")

    def __str__(self):
        return f"{self.sample_id}: {self.status} @ {self.timestamp}"
