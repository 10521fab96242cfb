import json
import logging
import uuid
from decimal import Decimal

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder

from apps.budgets.metrics import to_decimal
from .models import ActivityRecord

logger = logging.getLogger(__name__)

# Bookkeeping columns never reported as changes
SYSTEM_FIELDS = {'id', 'created_at', 'updated_at', 'created_by_id', 'updated_by_id'}

BUDGET_FIELDS = (
    'total_allocated', 'total_obligated', 'total_utilized',
    'allocated_budget', 'obligated_budget', 'budget_utilized', 'balance',
)
ALLOCATED_FIELDS = ('total_allocated', 'allocated_budget')
DATE_FIELDS = ('report_date', 'date_started', 'target_date', 'completion_date', 'target_date_completion')
LOCATION_FIELDS = ('municipality', 'barangay', 'district')
DELETION_ACTIONS = ('deleted', 'purged', 'bulk_deleted')


def new_batch_id():
    return f"batch_{uuid.uuid4().hex}"


def snapshot(instance):
    """JSON-safe copy of every concrete column of a model instance"""
    data = {field.attname: getattr(instance, field.attname) for field in instance._meta.concrete_fields}
    return json.loads(json.dumps(data, cls=DjangoJSONEncoder))


def calculate_changed_fields(before, after):
    """Names of the non-system fields whose values differ between two snapshots"""
    keys = (set(before) | set(after)) - SYSTEM_FIELDS
    return sorted(key for key in keys if before.get(key) != after.get(key))


def allocated_figure(values):
    for field in ALLOCATED_FIELDS:
        if field in values:
            return values[field]
    return None


def build_change_summary(before, after, changed_fields):
    """Highlight budget, status, date and location changes"""
    summary = {}

    if any(field in BUDGET_FIELDS for field in changed_fields):
        summary['budget_changed'] = True
        summary['old_budget'] = allocated_figure(before)
        summary['new_budget'] = allocated_figure(after)

    if 'status' in changed_fields:
        summary['status_changed'] = True
        summary['old_status'] = before.get('status')
        summary['new_status'] = after.get('status')

    if any(field in DATE_FIELDS for field in changed_fields):
        summary['date_changed'] = True

    if any(field in LOCATION_FIELDS for field in changed_fields):
        summary['location_changed'] = True

    return summary


def flag_activity(action, change_summary):
    """
    Decide whether an activity needs review.

    Returns:
        (is_flagged, flag_reason)
    """
    if action in DELETION_ACTIONS:
        return True, 'Record deletion'

    if change_summary.get('budget_changed'):
        old_budget = to_decimal(change_summary.get('old_budget'))
        new_budget = to_decimal(change_summary.get('new_budget'))
        if old_budget > 0:
            percent_change = abs((new_budget - old_budget) / old_budget * 100)
            if percent_change > Decimal(str(settings.ACTIVITY_BUDGET_FLAG_PERCENT)):
                return True, f'Large budget change: {percent_change:.1f}%'

    if change_summary.get('status_changed'):
        new_status = change_summary.get('new_status')
        if new_status in settings.ACTIVITY_TERMINAL_STATUSES:
            return True, f'Status changed to {new_status}'

    return False, ''


def record_activity(actor, action, instance, before=None, after=None, reason='', batch_id='', entity_id=None):
    """
    Write one immutable activity record for a mutation.

    Args:
        actor: User performing the action (None for system jobs)
        action: one of ActivityRecord.ACTION_CHOICES
        instance: the affected budget node
        before / after: snapshots taken with snapshot()
        reason: optional free-text justification
        batch_id: shared identifier for records written by one bulk action
        entity_id: pk to record when the instance no longer has one (purge)
    """
    changed_fields = []
    change_summary = {}
    if before is not None and after is not None:
        changed_fields = calculate_changed_fields(before, after)
        change_summary = build_change_summary(before, after, changed_fields)

    is_flagged, flag_reason = flag_activity(action, change_summary)

    record = ActivityRecord.objects.create(
        entity_kind=instance.KIND,
        entity_id=str(entity_id if entity_id is not None else instance.pk),
        action=action,
        actor=actor,
        actor_name=actor.get_full_name() if actor else 'System',
        actor_email=getattr(actor, 'email', '') or '',
        actor_role=getattr(actor, 'role', '') or '',
        actor_department=getattr(actor, 'department', '') or '',
        previous_values=before,
        new_values=after,
        changed_fields=changed_fields,
        change_summary=change_summary,
        batch_id=batch_id or '',
        reason=reason or '',
        is_flagged=is_flagged,
        flag_reason=flag_reason,
    )

    if is_flagged:
        logger.info("Flagged %s on %s #%s: %s", action, record.entity_kind, record.entity_id, flag_reason)
    return record
