import logging
from collections import Counter

from django.apps import apps as django_apps
from django.db import transaction

from apps.budgets.exceptions import ValidationError
from .models import LOOKUP_MODELS

logger = logging.getLogger(__name__)


def get_lookup_model(lookup_kind):
    try:
        return LOOKUP_MODELS[lookup_kind]
    except KeyError:
        raise ValueError(f"Unknown lookup kind: {lookup_kind}")


def ensure_active(lookup_kind, code):
    """
    Confirm a referenced code exists and is active before a create/update proceeds.

    Raises:
        ValidationError: if the code is unknown or deactivated
    """
    model = get_lookup_model(lookup_kind)
    lookup = model.objects.filter(code=code).first()
    label = model._meta.verbose_name

    if lookup is None:
        raise ValidationError(f'{label} "{code}" does not exist.')
    if not lookup.is_active:
        raise ValidationError(f'{label} "{code}" is inactive.')
    return lookup


def adjust_usage(code, lookup_kind, delta):
    """
    Apply a usage delta to the lookup entry identified by code.

    Args:
        code: Lookup code referenced by the budget record. Blank codes are ignored.
        lookup_kind: 'particular', 'implementing_office' or 'category'
        delta: +1 for create/restore, -1 for trash/purge
    """
    if not code or not delta:
        return

    model = get_lookup_model(lookup_kind)

    with transaction.atomic():
        lookup = model.objects.select_for_update().filter(code=code).first()
        if lookup is None:
            # Old data may reference codes that were removed from the code table
            logger.warning("%s %r not found for usage count update", lookup_kind, code)
            return

        new_count = lookup.usage_count + delta
        if new_count < 0:
            logger.warning(
                "Usage count for %s %r would drop below zero (%s %+d); clamping to 0",
                lookup_kind, code, lookup.usage_count, delta,
            )
            new_count = 0

        lookup.usage_count = new_count
        lookup.save(update_fields=['usage_count', 'updated_at'])


def referenced_codes(instance):
    """Map each lookup field on a budget record to the code it currently holds"""
    return {field: getattr(instance, field) or '' for field in instance.LOOKUP_FIELDS}


def increment_for(instance):
    for field, lookup_kind in instance.LOOKUP_FIELDS.items():
        adjust_usage(getattr(instance, field), lookup_kind, +1)


def decrement_for(instance):
    for field, lookup_kind in instance.LOOKUP_FIELDS.items():
        adjust_usage(getattr(instance, field), lookup_kind, -1)


def swap_for(before_codes, instance):
    """Move usage from old codes to new codes for every lookup field that changed"""
    for field, lookup_kind in instance.LOOKUP_FIELDS.items():
        old_code = before_codes.get(field) or ''
        new_code = getattr(instance, field) or ''
        if old_code == new_code:
            continue
        adjust_usage(old_code, lookup_kind, -1)
        adjust_usage(new_code, lookup_kind, +1)


def referencing_models():
    """Every installed model that references lookup codes"""
    return [model for model in django_apps.get_models() if getattr(model, 'LOOKUP_FIELDS', None)]


def count_live_references(lookup_kind):
    counts = Counter()
    for model in referencing_models():
        for field, kind in model.LOOKUP_FIELDS.items():
            if kind != lookup_kind:
                continue
            codes = model.all_objects.filter(is_deleted=False).exclude(**{field: ''}).values_list(field, flat=True)
            counts.update(codes)
    return counts


def reconcile_usage_counts(lookup_kind=None):
    """
    Recompute usage counters from scratch by scanning live references.

    The delta-based counters can drift if a transition is ever applied without
    its counter update; this is the maintenance safeguard.

    Returns:
        list of dicts describing every corrected counter
    """
    kinds = [lookup_kind] if lookup_kind else list(LOOKUP_MODELS)
    drift = []

    with transaction.atomic():
        for kind in kinds:
            model = get_lookup_model(kind)
            actual = count_live_references(kind)

            for lookup in model.objects.select_for_update():
                expected = actual.get(lookup.code, 0)
                if lookup.usage_count == expected:
                    continue
                drift.append({
                    'kind': kind,
                    'code': lookup.code,
                    'stored': lookup.usage_count,
                    'actual': expected,
                })
                lookup.usage_count = expected
                lookup.save(update_fields=['usage_count', 'updated_at'])

    if drift:
        logger.warning("Reconciled %d drifted usage counter(s)", len(drift))
    return drift
