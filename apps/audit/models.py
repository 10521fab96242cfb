from django.db import models
from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder


class ActivityRecord(models.Model):
    """Append-only audit entry written once per mutation (or per entity in a bulk batch)"""
    ACTION_CHOICES = (
        ('created', 'Created'),
        ('updated', 'Updated'),
        ('deleted', 'Moved to Trash'),
        ('restored', 'Restored'),
        ('purged', 'Permanently Deleted'),
        ('bulk_updated', 'Bulk Updated'),
        ('bulk_deleted', 'Bulk Moved to Trash'),
        ('bulk_restored', 'Bulk Restored'),
    )

    entity_kind = models.CharField(max_length=30, db_index=True)
    entity_id = models.CharField(max_length=100, db_index=True)
    action = models.CharField(max_length=30, choices=ACTION_CHOICES)

    # Actor snapshot at the time of the action
    actor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True)
    actor_name = models.CharField(max_length=255, blank=True)
    actor_email = models.CharField(max_length=255, blank=True)
    actor_role = models.CharField(max_length=30, blank=True)
    actor_department = models.CharField(max_length=255, blank=True)

    # Change tracking
    previous_values = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    new_values = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    changed_fields = models.JSONField(default=list, blank=True)
    change_summary = models.JSONField(default=dict, blank=True)

    batch_id = models.CharField(max_length=64, blank=True, db_index=True)
    reason = models.TextField(blank=True)

    is_flagged = models.BooleanField(default=False)
    flag_reason = models.CharField(max_length=255, blank=True)

    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp', '-id']
        verbose_name = "Activity Record"
        verbose_name_plural = "Activity Records"
        indexes = [
            models.Index(fields=['entity_kind', 'entity_id', '-timestamp']),
        ]

    def __str__(self):
        return f"{self.actor_name} - {self.action} {self.entity_kind} #{self.entity_id} - {self.timestamp}"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValueError("Activity records are immutable")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Activity records cannot be deleted")
