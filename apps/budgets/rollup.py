"""
Rollup engine: recompute one node's derived figures from its live children.

recalculate() touches exactly one node. Ancestor propagation is composed
explicitly by callers through rollup_chain() / rollup_parent(), which walk up
the tree one level at a time and stop as soon as a level's figures did not
change, its parent is gone, or its parent is in the trash.
"""
import logging

from django.db import transaction

from .exceptions import NotFound
from .metrics import derive_metrics, strategy_for
from .models import Allocation, FundRecord, Project

logger = logging.getLogger(__name__)

# Bottom-up order used when recomputing everything
ROLLUP_ORDER = [Project, Allocation, FundRecord]


class RollupSummary:
    """Outcome of recalculating one node"""

    def __init__(self, node, metrics, changed):
        self.node = node
        self.metrics = metrics
        self.changed = changed

    def __repr__(self):
        return f"<RollupSummary {self.node.KIND}#{self.node.pk} status={self.metrics.status} changed={self.changed}>"

    def as_dict(self):
        metrics = self.metrics
        return {
            self.node.COUNT_LABEL: metrics.child_count,
            'statusCounts': dict(metrics.status_counts),
            'totalObligated': metrics.obligated,
            'totalUtilized': metrics.utilized,
            'utilizationRate': metrics.rate,
            'status': metrics.status,
            'autoCalculated': metrics.auto_calculated,
            'changed': self.changed,
        }


def recalculate(model, pk, actor=None):
    """
    Recompute a rollup node from its live direct children and persist the result.

    Children in the trash never contribute, regardless of the auto-calculate flag.
    The read of the children and the write of the node happen in one transaction.

    Raises:
        NotFound: if the node does not exist
    """
    if not model.IS_ROLLUP:
        raise ValueError(f"{model.__name__} has no children to roll up")

    with transaction.atomic():
        node = model.all_objects.select_for_update().filter(pk=pk).first()
        if node is None:
            raise NotFound(f"{model._meta.verbose_name} {pk} not found.")

        children = node.children_queryset().filter(is_deleted=False)
        strategy = strategy_for(node.auto_calculate_utilized, node.total_utilized)
        metrics = derive_metrics(
            (child.as_child_summary() for child in children),
            node.total_allocated,
            strategy,
        )

        previous = node.rollup_snapshot()
        node.apply_metrics(metrics)
        update_fields = node.ROLLUP_FIELDS + ['updated_at']
        if actor is not None:
            node.updated_by = actor
            update_fields.append('updated_by')
        node.save(update_fields=update_fields)

    changed = node.rollup_snapshot() != previous
    logger.debug(
        "Recalculated %s #%s (%s): obligated=%s utilized=%s rate=%s status=%s changed=%s",
        node.KIND, node.pk, 'auto' if metrics.auto_calculated else 'manual',
        metrics.obligated, metrics.utilized, metrics.rate, metrics.status, changed,
    )
    return RollupSummary(node, metrics, changed)


def rollup_chain(model, pk, actor=None):
    """
    Recalculate the given node, then keep climbing while figures change.

    The starting node is always recalculated (its child set just changed).
    A missing or trashed node ends the chain quietly.

    Returns:
        list of RollupSummary, lowest node first
    """
    summaries = []

    while model is not None and pk is not None:
        node = model.all_objects.filter(pk=pk).only('pk', 'is_deleted').first()
        if node is None:
            logger.debug("%s #%s no longer exists; nothing to roll up", model.__name__, pk)
            break
        if node.is_deleted:
            break

        summary = recalculate(model, pk, actor)
        summaries.append(summary)
        if not summary.changed:
            break

        model, pk = model.parent_model(), summary.node.parent_pk

    return summaries


def rollup_parent(instance, actor=None):
    """Run the chain starting from the instance's parent, if it has one"""
    parent_model = instance.parent_model()
    if parent_model is None:
        return []
    return rollup_chain(parent_model, instance.parent_pk, actor)


def recalculate_all(model=None, actor=None):
    """
    Recompute every live rollup node, lower tiers first.

    Returns:
        dict of model label -> number of nodes recalculated
    """
    models = [model] if model is not None else ROLLUP_ORDER
    counts = {}

    for node_model in models:
        pks = list(node_model.objects.values_list('pk', flat=True))
        for pk in pks:
            recalculate(node_model, pk, actor)
        counts[node_model._meta.verbose_name_plural] = len(pks)
        logger.info("Recalculated %d %s", len(pks), node_model._meta.verbose_name_plural)

    return counts
