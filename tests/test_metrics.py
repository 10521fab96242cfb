"""Tests for the status and rate calculator."""

from decimal import Decimal
from itertools import product

import pytest

from apps.budgets.metrics import (
    ChildSummary,
    Computed,
    Manual,
    derive_metrics,
    derive_status,
    count_statuses,
    leaf_financials,
    strategy_for,
    to_decimal,
    utilization_rate,
)

STATUSES = ["ongoing", "delayed", "completed", None, "cancelled"]


def expected_status(statuses):
    if not statuses:
        return "ongoing"
    if "ongoing" in statuses:
        return "ongoing"
    if "delayed" in statuses:
        return "delayed"
    return "completed"


class TestDeriveStatus:
    """Tests for the status priority cascade."""

    def test_no_children_is_ongoing(self):
        """Test that a node without children defaults to ongoing."""
        metrics = derive_metrics([], Decimal("1000"))
        assert metrics.status == "ongoing"
        assert metrics.child_count == 0
        assert metrics.status_counts == {"ongoing": 0, "delayed": 0, "completed": 0}

    @pytest.mark.parametrize("size", [1, 2, 3])
    def test_status_grid(self, size):
        """Test every combination of child statuses up to three children."""
        for statuses in product(STATUSES, repeat=size):
            children = [ChildSummary(None, None, status) for status in statuses]
            metrics = derive_metrics(children, Decimal("0"))
            assert metrics.status == expected_status(statuses), statuses
            assert metrics.child_count == size

    def test_unmatched_statuses_count_as_completed(self):
        """Test that children with no recognised status yield completed."""
        counts = count_statuses([None, "cancelled"])
        assert derive_status(counts, 2) == "completed"

    def test_status_counts(self):
        """Test per-status child counts."""
        children = [
            ChildSummary(0, 0, "ongoing"),
            ChildSummary(0, 0, "delayed"),
            ChildSummary(0, 0, "delayed"),
            ChildSummary(0, 0, "completed"),
        ]
        metrics = derive_metrics(children, 0)
        assert metrics.status_counts == {"ongoing": 1, "delayed": 2, "completed": 1}


class TestDeriveMetrics:
    """Tests for obligated/utilized totals and the utilization rate."""

    def test_sums_children(self):
        """Test that obligated and utilized figures are summed."""
        children = [
            ChildSummary(Decimal("100000.00"), Decimal("50000.00"), "completed"),
            ChildSummary(Decimal("200000.00"), Decimal("100000.00"), "delayed"),
        ]
        metrics = derive_metrics(children, Decimal("500000.00"))
        assert metrics.obligated == Decimal("300000.00")
        assert metrics.utilized == Decimal("150000.00")
        assert metrics.rate == Decimal("30.00")
        assert metrics.status == "delayed"
        assert metrics.auto_calculated is True

    def test_missing_figures_count_as_zero(self):
        """Test that None and malformed child figures contribute zero."""
        children = [
            ChildSummary(None, None, "ongoing"),
            ChildSummary("not a number", Decimal("10.00"), "ongoing"),
        ]
        metrics = derive_metrics(children, Decimal("100"))
        assert metrics.obligated == Decimal("0")
        assert metrics.utilized == Decimal("10.00")
        assert metrics.rate == Decimal("10.00")

    def test_manual_strategy_keeps_utilized(self):
        """Test that a manual utilized figure is passed through untouched."""
        children = [ChildSummary(Decimal("100"), Decimal("90"), "ongoing")]
        metrics = derive_metrics(children, Decimal("1000"), Manual(Decimal("400")))
        assert metrics.obligated == Decimal("100")
        assert metrics.utilized == Decimal("400")
        assert metrics.rate == Decimal("40.00")
        assert metrics.auto_calculated is False

    def test_default_strategy_is_computed(self):
        """Test that omitting the strategy sums the children."""
        children = [ChildSummary(0, Decimal("5"), "ongoing")]
        assert derive_metrics(children, 10) == derive_metrics(children, 10, Computed())

    def test_deterministic(self):
        """Test that identical inputs give identical outputs."""
        children = [ChildSummary(Decimal("1"), Decimal("2"), "delayed")]
        assert derive_metrics(children, Decimal("3")) == derive_metrics(children, Decimal("3"))


class TestUtilizationRate:
    """Tests for rate rounding and edge cases."""

    def test_zero_allocation(self):
        """Test that a zero or missing allocation gives a zero rate."""
        assert utilization_rate(Decimal("50"), Decimal("0")) == Decimal("0")
        assert utilization_rate(Decimal("50"), None) == Decimal("0")

    def test_rounds_half_up(self):
        """Test rounding to two decimal places."""
        assert utilization_rate(Decimal("1"), Decimal("3")) == Decimal("33.33")
        assert utilization_rate(Decimal("2"), Decimal("3")) == Decimal("66.67")

    def test_not_clamped(self):
        """Test that over-utilization is reported as is."""
        assert utilization_rate(Decimal("150"), Decimal("100")) == Decimal("150.00")


class TestHelpers:
    """Tests for conversion helpers and leaf financials."""

    def test_to_decimal(self):
        """Test coercion of unusable figures to zero."""
        assert to_decimal(None) == Decimal("0")
        assert to_decimal("") == Decimal("0")
        assert to_decimal("abc") == Decimal("0")
        assert to_decimal(Decimal("NaN")) == Decimal("0")
        assert to_decimal("12.50") == Decimal("12.50")

    def test_strategy_for(self):
        """Test strategy selection from the auto-calculate flag."""
        assert isinstance(strategy_for(True, Decimal("5")), Computed)
        manual = strategy_for(False, Decimal("5"))
        assert isinstance(manual, Manual)
        assert manual.utilized(Decimal("99")) == Decimal("5")

    def test_leaf_financials(self):
        """Test report balance and rate derivation."""
        assert leaf_financials(Decimal("100"), Decimal("40")) == (Decimal("60"), Decimal("40.00"))

    def test_leaf_financials_without_allocation(self):
        """Test that spending without an allocation counts as fully utilized."""
        balance, rate = leaf_financials(None, Decimal("50"))
        assert balance == Decimal("-50")
        assert rate == Decimal("100")

    def test_leaf_financials_keeps_explicit_balance(self):
        """Test that an entered balance is not overwritten."""
        balance, rate = leaf_financials(Decimal("100"), Decimal("40"), Decimal("75"))
        assert balance == Decimal("75")
        assert rate == Decimal("40.00")

    def test_leaf_financials_empty(self):
        """Test a report with no figures at all."""
        assert leaf_financials(None, None) == (None, Decimal("0"))
