from django.contrib import admin
from .models import ActivityRecord


@admin.register(ActivityRecord)
class ActivityRecordAdmin(admin.ModelAdmin):
    list_display = ['timestamp', 'action', 'entity_kind', 'entity_id', 'actor_name', 'is_flagged', 'batch_id']
    list_filter = ['action', 'entity_kind', 'is_flagged']
    search_fields = ['entity_id', 'actor_name', 'actor_email', 'batch_id', 'reason']
    date_hierarchy = 'timestamp'

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
