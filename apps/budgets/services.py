import logging
import uuid
from typing import NamedTuple

from django.db import transaction
from django.utils import timezone

from apps.audit.utils import new_batch_id, record_activity, snapshot
from apps.lookups.services import (
    decrement_for,
    ensure_active,
    increment_for,
    referenced_codes,
    swap_for,
)
from .exceptions import BudgetError, NotFound, ValidationError
from .forms import bind_form
from .models import SoftDeleteModel
from .rollup import recalculate, rollup_chain, rollup_parent

logger = logging.getLogger(__name__)

RESTORED_FIELDS = {
    'is_deleted': False,
    'deleted_at': None,
    'deleted_by': None,
    'deletion_reason': '',
    'deletion_type': '',
    'deletion_batch': None,
}


class CascadeResult(NamedTuple):
    kind: str
    pk: int
    affected: int

    def as_dict(self):
        return {'kind': self.kind, 'id': self.pk, 'affected': self.affected}


class BulkResult:
    """Outcome of a bulk action; one entry in results per requested id"""

    def __init__(self, total, batch_id=None):
        self.total = total
        self.batch_id = batch_id or new_batch_id()
        self.count = 0
        self.results = []

    def succeeded(self, pk, **extra):
        self.count += 1
        self.results.append({'id': pk, 'success': True, **extra})

    def failed(self, pk, error):
        self.results.append({'id': pk, 'success': False, 'code': error.code, 'message': error.message})

    def as_dict(self):
        return {
            'count': self.count,
            'total': self.total,
            'results': self.results,
            'batch_id': self.batch_id,
        }


def get_node(model, pk, for_update=False):
    """Fetch a node whether or not it is in the trash"""
    queryset = model.all_objects.all()
    if for_update:
        queryset = queryset.select_for_update()
    try:
        node = queryset.filter(pk=pk).first()
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {model._meta.verbose_name} id: {pk!r}.")
    if node is None:
        raise NotFound(f"{model._meta.verbose_name} {pk} not found.")
    return node


def get_live_node(model, pk, for_update=False):
    node = get_node(model, pk, for_update)
    if node.is_deleted:
        raise ValidationError(f"{model._meta.verbose_name} {pk} is in the trash. Restore it first.")
    return node


def descendant_tiers(model, pks, **filters):
    """
    Walk down the tree one tier at a time.

    Only rows matching filters are yielded, and only their children are
    visited on the next tier.

    Yields:
        (tier_model, rows) from the children of pks down to the leaves
    """
    child_model = model.child_model()
    while child_model is not None and pks:
        rows = list(child_model.all_objects.filter(
            **{f'{model.CHILD_PARENT_FIELD}__in': pks}, **filters
        ))
        yield child_model, rows
        model, child_model = child_model, child_model.child_model()
        pks = [row.pk for row in rows]


def trash(model, pk, actor, reason='', batch_id=''):
    """
    Move a node and its live descendants to the trash.

    The node is marked MANUAL and every descendant CASCADE. All of them share
    one deletion batch so restore can bring back exactly this set.
    """
    timestamp = timezone.now()
    deletion_batch = uuid.uuid4()
    trash_fields = {
        'is_deleted': True,
        'deleted_at': timestamp,
        'deleted_by': actor,
        'deletion_reason': reason or '',
        'deletion_batch': deletion_batch,
    }

    with transaction.atomic():
        node = get_node(model, pk, for_update=True)
        if node.is_deleted:
            raise ValidationError(f"{model._meta.verbose_name} {pk} is already in the trash.")
        before = snapshot(node)

        # 1. The node itself
        model.all_objects.filter(pk=pk).update(deletion_type=SoftDeleteModel.DELETION_MANUAL, **trash_fields)
        decrement_for(node)
        affected = 1

        # 2. Live descendants, tier by tier
        for tier_model, rows in descendant_tiers(model, [pk], is_deleted=False):
            tier_model.all_objects.filter(pk__in=[row.pk for row in rows]).update(
                deletion_type=SoftDeleteModel.DELETION_CASCADE, **trash_fields
            )
            for row in rows:
                decrement_for(row)
            affected += len(rows)

        # 3. Parent no longer counts this node
        rollup_parent(node, actor)

        node.refresh_from_db()
        record_activity(
            actor, 'bulk_deleted' if batch_id else 'deleted', node,
            before=before, after=snapshot(node), reason=reason, batch_id=batch_id,
        )

    logger.info("Trashed %s #%s with %d descendant(s)", model.KIND, pk, affected - 1)
    return CascadeResult(model.KIND, pk, affected)


def restore(model, pk, actor, reason='', batch_id=''):
    """
    Bring a node back from the trash together with the descendants trashed
    by the same action. Descendants trashed on their own stay in the trash.
    """
    with transaction.atomic():
        node = get_node(model, pk, for_update=True)
        if not node.is_deleted:
            raise ValidationError(f"{model._meta.verbose_name} {pk} is not in the trash.")
        before = snapshot(node)
        deletion_batch = node.deletion_batch

        model.all_objects.filter(pk=pk).update(**RESTORED_FIELDS)
        increment_for(node)
        affected = 1

        restored_rollups = []
        if deletion_batch is not None:
            for tier_model, rows in descendant_tiers(model, [pk], is_deleted=True, deletion_batch=deletion_batch):
                tier_model.all_objects.filter(pk__in=[row.pk for row in rows]).update(**RESTORED_FIELDS)
                for row in rows:
                    increment_for(row)
                affected += len(rows)
                if tier_model.IS_ROLLUP:
                    restored_rollups.append((tier_model, [row.pk for row in rows]))

        # Recompute bottom-up: restored descendants first, then the node, then its ancestors
        for tier_model, pks in reversed(restored_rollups):
            for child_pk in pks:
                recalculate(tier_model, child_pk, actor)
        if model.IS_ROLLUP:
            recalculate(model, pk, actor)
        rollup_parent(node, actor)

        node.refresh_from_db()
        record_activity(
            actor, 'bulk_restored' if batch_id else 'restored', node,
            before=before, after=snapshot(node), reason=reason, batch_id=batch_id,
        )

    logger.info("Restored %s #%s with %d descendant(s)", model.KIND, pk, affected - 1)
    return CascadeResult(model.KIND, pk, affected)


def purge(model, pk, actor, reason=''):
    """
    Permanently delete a node and everything below it, leaves first.

    Usage counters are only decremented for rows that were still live;
    trashed rows gave their references back when they were trashed.
    """
    with transaction.atomic():
        node = get_node(model, pk, for_update=True)
        before = snapshot(node)
        parent_model, parent_pk = model.parent_model(), node.parent_pk

        tiers = list(descendant_tiers(model, [pk]))
        affected = 1
        for tier_model, rows in reversed(tiers):
            for row in rows:
                if not row.is_deleted:
                    decrement_for(row)
            tier_model.all_objects.filter(pk__in=[row.pk for row in rows]).delete()
            affected += len(rows)

        if not node.is_deleted:
            decrement_for(node)
        node.delete()

        if parent_model is not None:
            rollup_chain(parent_model, parent_pk, actor)

        record_activity(actor, 'purged', node, before=before, reason=reason, entity_id=pk)

    logger.info("Purged %s #%s with %d descendant(s)", model.KIND, pk, affected - 1)
    return CascadeResult(model.KIND, pk, affected)


def validate_payload(form, unknown):
    if unknown:
        raise ValidationError(
            f"Unknown field(s): {', '.join(unknown)}",
            errors={key: ['Unknown field.'] for key in unknown},
        )
    if not form.is_valid():
        errors = {field: [str(error) for error in field_errors] for field, field_errors in form.errors.items()}
        raise ValidationError("Please correct the errors below.", errors=errors)


def ensure_codes_active(node, before_codes=None):
    """Validate every referenced code that is new or changed"""
    before_codes = before_codes or {}
    for field, lookup_kind in node.LOOKUP_FIELDS.items():
        code = getattr(node, field)
        if code and code != before_codes.get(field):
            ensure_active(lookup_kind, code)


def create_node(model, actor, payload):
    """
    Create a node from a payload, validate its codes, count its references
    and bring its own figures and its ancestors' figures up to date.
    """
    form, unknown = bind_form(model, payload)
    validate_payload(form, unknown)

    with transaction.atomic():
        node = form.save(commit=False)
        ensure_codes_active(node)
        node.created_by = actor
        node.updated_by = actor
        node.save()

        increment_for(node)
        if model.IS_ROLLUP:
            recalculate(model, node.pk, actor)
        rollup_parent(node, actor)

        node.refresh_from_db()
        record_activity(actor, 'created', node, after=snapshot(node))

    logger.info("Created %s #%s", model.KIND, node.pk)
    return node


def update_node(model, pk, actor, payload, reason='', batch_id=''):
    """
    Apply a partial update to a live node.

    Changed codes move their usage from the old entry to the new one.
    Moving a node to another parent recomputes both the old and the new branch.
    """
    with transaction.atomic():
        node = get_live_node(model, pk, for_update=True)
        before = snapshot(node)
        before_codes = referenced_codes(node)
        old_parent_pk = node.parent_pk

        payload = dict(payload)
        if not model.IS_ROLLUP and 'balance' not in payload and {'allocated_budget', 'budget_utilized'} & set(payload):
            # Recompute the balance from the new figures
            payload['balance'] = None

        form, unknown = bind_form(model, payload, instance=node)
        validate_payload(form, unknown)

        node = form.save(commit=False)
        ensure_codes_active(node, before_codes)
        node.updated_by = actor
        node.save()
        swap_for(before_codes, node)

        # A direct edit always refreshes the node and its parent
        if model.IS_ROLLUP:
            recalculate(model, node.pk, actor)
        if node.parent_pk != old_parent_pk:
            rollup_chain(model.parent_model(), old_parent_pk, actor)
        rollup_parent(node, actor)

        node.refresh_from_db()
        record_activity(
            actor, 'bulk_updated' if batch_id else 'updated', node,
            before=before, after=snapshot(node), reason=reason, batch_id=batch_id,
        )

    return node


def refresh_node(model, pk, actor=None):
    """Recalculate one rollup node on demand and pass any change up the tree"""
    with transaction.atomic():
        summary = recalculate(model, pk, actor)
        if summary.changed and not summary.node.is_deleted:
            rollup_parent(summary.node, actor)
    return summary


def toggle_auto_calculate(model, pk, actor, enabled, reason='', batch_id=''):
    """
    Switch a rollup node between computed and manually entered utilized figures.

    Turning it on overwrites the manual figure with the children's sum right
    away. Turning it off freezes the current figure but still refreshes the rate.
    """
    if not model.IS_ROLLUP:
        raise ValidationError(f"{model._meta.verbose_name_plural} have no auto-calculated figures.")

    with transaction.atomic():
        node = get_live_node(model, pk, for_update=True)
        before = snapshot(node)

        node.auto_calculate_utilized = bool(enabled)
        node.updated_by = actor
        node.save(update_fields=['auto_calculate_utilized', 'updated_by', 'updated_at'])

        summaries = rollup_chain(model, pk, actor)

        node.refresh_from_db()
        record_activity(
            actor, 'bulk_updated' if batch_id else 'updated', node,
            before=before, after=snapshot(node), reason=reason, batch_id=batch_id,
        )

    return summaries[0]


def toggle_pin(model, pk, actor):
    if not model.IS_ROLLUP:
        raise ValidationError(f"{model._meta.verbose_name_plural} cannot be pinned.")

    with transaction.atomic():
        node = get_live_node(model, pk, for_update=True)
        before = snapshot(node)

        node.is_pinned = not node.is_pinned
        node.pinned_at = timezone.now() if node.is_pinned else None
        node.pinned_by = actor if node.is_pinned else None
        node.save(update_fields=['is_pinned', 'pinned_at', 'pinned_by', 'updated_at'])

        record_activity(actor, 'updated', node, before=before, after=snapshot(node))

    return node


def run_bulk(label, model, pks, operation):
    """
    Apply operation(pk, batch_id) to each id in its own savepoint.

    A missing or invalid id is logged and skipped; the rest still go through.
    """
    result = BulkResult(total=len(pks))

    for pk in pks:
        try:
            with transaction.atomic():
                outcome = operation(pk, result.batch_id)
        except BudgetError as e:
            logger.warning("Bulk %s skipped %s #%s: %s", label, model.KIND, pk, e.message)
            result.failed(pk, e)
            continue
        extra = outcome.as_dict() if isinstance(outcome, CascadeResult) else {}
        extra.pop('id', None)
        result.succeeded(pk, **extra)

    logger.info(
        "Bulk %s on %s: %d of %d succeeded (%s)",
        label, model._meta.verbose_name_plural, result.count, result.total, result.batch_id,
    )
    return result


def bulk_trash(model, pks, actor, reason=''):
    return run_bulk(
        'trash', model, pks,
        lambda pk, batch_id: trash(model, pk, actor, reason, batch_id=batch_id),
    )


def bulk_restore(model, pks, actor, reason=''):
    return run_bulk(
        'restore', model, pks,
        lambda pk, batch_id: restore(model, pk, actor, reason, batch_id=batch_id),
    )


def bulk_update_category(model, pks, actor, category_code, reason=''):
    if 'category_code' not in model.LOOKUP_FIELDS:
        raise ValidationError(f"{model._meta.verbose_name_plural} have no category.")
    if category_code:
        ensure_active('category', category_code)

    return run_bulk(
        'category update', model, pks,
        lambda pk, batch_id: update_node(
            model, pk, actor, {'category_code': category_code or ''}, reason, batch_id=batch_id
        ),
    )


def bulk_toggle_auto_calculate(model, pks, actor, enabled, reason=''):
    if not model.IS_ROLLUP:
        raise ValidationError(f"{model._meta.verbose_name_plural} have no auto-calculated figures.")

    return run_bulk(
        'auto-calculate toggle', model, pks,
        lambda pk, batch_id: toggle_auto_calculate(model, pk, actor, enabled, reason, batch_id=batch_id),
    )
