"""
Status & rate calculations for rollup nodes.

Everything in this module is pure: no database access, no clock, no logging.
A parent node's derived figures depend only on its live children's figures,
its own allocated amount and the utilized-figure strategy selected for it.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, Iterable, NamedTuple, Optional

ZERO = Decimal('0.00')
HUNDRED = Decimal('100')
RATE_PLACES = Decimal('0.01')

STATUS_ONGOING = 'ongoing'
STATUS_DELAYED = 'delayed'
STATUS_COMPLETED = 'completed'
STATUS_CHOICES = [
    (STATUS_ONGOING, 'Ongoing'),
    (STATUS_DELAYED, 'Delayed'),
    (STATUS_COMPLETED, 'Completed'),
]


class ChildSummary(NamedTuple):
    """The figures a parent reads from one live child"""
    obligated: Optional[Decimal]
    utilized: Optional[Decimal]
    status: Optional[str]


class Metrics(NamedTuple):
    obligated: Decimal
    utilized: Decimal
    rate: Decimal
    status: str
    status_counts: Dict[str, int]
    child_count: int
    auto_calculated: bool


class Computed:
    """Utilized figure is the sum of the children's utilized figures"""
    auto_calculated = True

    def utilized(self, children_total):
        return children_total

    def __repr__(self):
        return 'Computed()'


class Manual:
    """Utilized figure is owned by a human editor and passed through untouched"""
    auto_calculated = False

    def __init__(self, utilized):
        self.value = to_decimal(utilized)

    def utilized(self, children_total):
        return self.value

    def __repr__(self):
        return f'Manual({self.value})'


def strategy_for(auto_calculate, manual_utilized=None):
    if auto_calculate:
        return Computed()
    return Manual(manual_utilized)


def to_decimal(value):
    """Coerce a possibly missing or malformed figure; anything unusable counts as zero"""
    if value is None or value == '':
        return ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return ZERO
    return result if result.is_finite() else ZERO


def utilization_rate(utilized, allocated):
    """Percentage of the allocation that was utilized. Not clamped to 100."""
    allocated = to_decimal(allocated)
    if allocated <= 0:
        return ZERO
    return (to_decimal(utilized) / allocated * HUNDRED).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)


def count_statuses(statuses):
    counts = {STATUS_ONGOING: 0, STATUS_DELAYED: 0, STATUS_COMPLETED: 0}
    for status in statuses:
        if status in counts:
            counts[status] += 1
    return counts


def derive_status(status_counts, child_count):
    """
    Strict priority cascade: a single ongoing child makes the parent ongoing,
    otherwise a single delayed child makes it delayed, otherwise completed.
    A node without children defaults to ongoing.
    """
    if child_count == 0:
        return STATUS_ONGOING
    if status_counts.get(STATUS_ONGOING):
        return STATUS_ONGOING
    if status_counts.get(STATUS_DELAYED):
        return STATUS_DELAYED
    return STATUS_COMPLETED


def derive_metrics(children: Iterable[ChildSummary], allocated, strategy=None) -> Metrics:
    """
    Derive a parent's obligated/utilized totals, utilization rate and status.

    Args:
        children: summaries of the parent's live (non-trashed) children
        allocated: the parent's own allocated amount
        strategy: Computed() or Manual(utilized); defaults to Computed()

    Returns:
        Metrics
    """
    strategy = strategy or Computed()
    children = list(children)

    obligated = sum((to_decimal(child.obligated) for child in children), ZERO)
    children_utilized = sum((to_decimal(child.utilized) for child in children), ZERO)
    utilized = strategy.utilized(children_utilized)

    status_counts = count_statuses(child.status for child in children)

    return Metrics(
        obligated=obligated,
        utilized=utilized,
        rate=utilization_rate(utilized, allocated),
        status=derive_status(status_counts, len(children)),
        status_counts=status_counts,
        child_count=len(children),
        auto_calculated=strategy.auto_calculated,
    )


def leaf_financials(allocated, utilized, balance=None):
    """
    Derive a report's own balance and utilization rate.

    Balance is allocated minus utilized unless one was entered explicitly.
    A report with spending but no allocation is treated as fully utilized.

    Returns:
        (balance, rate) tuple; balance stays None when there is nothing to compute from
    """
    has_allocated = allocated is not None and to_decimal(allocated) > 0
    has_utilized = utilized is not None and to_decimal(utilized) > 0

    if balance is None and (has_allocated or has_utilized):
        balance = to_decimal(allocated) - to_decimal(utilized)

    if has_allocated:
        rate = utilization_rate(utilized, allocated)
    elif has_utilized:
        rate = HUNDRED
    else:
        rate = ZERO
    return balance, rate
