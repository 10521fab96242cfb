"""Tests for lookup usage counters and their reconciliation."""

import pytest
from django.core.management import call_command

from apps.budgets import services
from apps.budgets.exceptions import ValidationError
from apps.budgets.models import Allocation, Project, Report
from apps.lookups.models import Particular, ImplementingOffice, Category
from apps.lookups.services import (
    adjust_usage,
    ensure_active,
    reconcile_usage_counts,
    referenced_codes,
    swap_for,
)


@pytest.mark.django_db
class TestAdjustUsage:
    """Tests for applying usage deltas."""

    def test_increment_and_decrement(self, lookups):
        """Test plain deltas."""
        adjust_usage("GAD", "particular", +1)
        adjust_usage("GAD", "particular", +1)
        adjust_usage("GAD", "particular", -1)
        assert Particular.objects.get(code="GAD").usage_count == 1

    def test_never_below_zero(self, lookups):
        """Test that a would-be negative counter is clamped."""
        adjust_usage("GAD", "particular", -1)
        assert Particular.objects.get(code="GAD").usage_count == 0

    def test_unknown_code_ignored(self, lookups):
        """Test that a code missing from the table is not an error."""
        adjust_usage("MISSING", "category", +1)
        assert not Category.objects.filter(code="MISSING").exists()

    def test_blank_code_ignored(self, lookups):
        """Test that blank codes are skipped."""
        adjust_usage("", "category", +1)
        adjust_usage(None, "category", +1)
        assert all(category.usage_count == 0 for category in Category.objects.all())

    def test_unknown_kind(self, lookups):
        """Test that an unknown lookup kind is a programming error."""
        with pytest.raises(ValueError):
            adjust_usage("GAD", "fund_source", +1)

    def test_swap_only_changed_fields(self, build):
        """Test that swapping moves usage for changed codes only."""
        project = build.project()
        before = referenced_codes(project)
        project.category_code = "HEALTH"
        swap_for(before, project)

        assert Category.objects.get(code="INFRA").usage_count == 0
        assert Category.objects.get(code="HEALTH").usage_count == 1
        assert ImplementingOffice.objects.get(code="PEO").usage_count == 1


@pytest.mark.django_db
class TestLifecycleCounts:
    """Tests for counters following records through trash and purge."""

    def test_trash_then_purge(self, build, encoder, super_admin):
        """Test that three projects on one category count down to zero."""
        projects = [build.project(category_code="HEALTH") for _ in range(3)]
        assert Category.objects.get(code="HEALTH").usage_count == 3

        services.trash(Project, projects[0].pk, encoder)
        assert Category.objects.get(code="HEALTH").usage_count == 2

        services.purge(Project, projects[1].pk, super_admin)
        services.purge(Project, projects[2].pk, super_admin)
        assert Category.objects.get(code="HEALTH").usage_count == 0

        services.purge(Project, projects[0].pk, super_admin)
        assert Category.objects.get(code="HEALTH").usage_count == 0


@pytest.mark.django_db
class TestEnsureActive:
    """Tests for the lookup validation collaborator."""

    def test_active(self, lookups):
        """Test that an active code is returned."""
        assert ensure_active("category", "INFRA") == lookups["infra"]

    def test_inactive(self, lookups):
        """Test that an inactive code is rejected."""
        with pytest.raises(ValidationError, match="inactive"):
            ensure_active("category", "RETIRED")

    def test_missing(self, lookups):
        """Test that a missing code is rejected."""
        with pytest.raises(ValidationError, match="does not exist"):
            ensure_active("particular", "NOPE")


@pytest.mark.django_db
class TestReconcile:
    """Tests for rebuilding counters from live references."""

    def test_in_sync_after_lifecycle(self, tree, build, encoder, super_admin):
        """Test that counters match live references after every kind of transition."""
        services.trash(Report, tree["completed"].pk, encoder)
        services.update_node(Report, tree["delayed"].pk, encoder, {"implementing_office_code": "TPH"})
        doomed = build.allocation(particular_code="20DF")
        services.purge(Allocation, doomed.pk, super_admin)
        services.restore(Report, tree["completed"].pk, encoder)

        assert reconcile_usage_counts() == []

    def test_corrects_drift(self, tree):
        """Test that drifted counters are reported and fixed."""
        Particular.objects.filter(code="GAD").update(usage_count=7)
        Category.objects.filter(code="HEALTH").update(usage_count=1)

        drift = reconcile_usage_counts()

        assert {"kind": "particular", "code": "GAD", "stored": 7, "actual": 2} in drift
        assert {"kind": "category", "code": "HEALTH", "stored": 1, "actual": 0} in drift
        assert len(drift) == 2
        assert Particular.objects.get(code="GAD").usage_count == 2

    def test_ignores_trashed_references(self, tree, encoder):
        """Test that trashed records do not count as references."""
        services.trash(Allocation, tree["allocation"].pk, encoder)
        ImplementingOffice.objects.filter(code="PEO").update(usage_count=3)

        drift = reconcile_usage_counts("implementing_office")

        assert drift == [{"kind": "implementing_office", "code": "PEO", "stored": 3, "actual": 0}]

    def test_command(self, tree, capsys):
        """Test the reconcile_usage_counts management command."""
        Particular.objects.filter(code="GAD").update(usage_count=0)

        call_command("reconcile_usage_counts", "--kind", "particular")

        output = capsys.readouterr().out
        assert "GAD: stored 0, actual 2" in output
        assert Particular.objects.get(code="GAD").usage_count == 2
