"""Shared fixtures for the budget tree tests."""

import pytest

from apps.budgets import services
from apps.budgets.models import Allocation, Project, Report, FundRecord, FundReport
from apps.lookups.models import Particular, ImplementingOffice, Category
from apps.user_accounts.models import User


@pytest.fixture
def encoder(db):
    """Regular user who creates and edits records."""
    return User.objects.create_user(
        email="encoder@example.com",
        password="secret",
        fullname="Ana Encoder",
        department="Provincial Budget Office",
        role=User.ROLE_USER,
    )


@pytest.fixture
def admin_actor(db):
    """Admin allowed to run bulk actions and pin records."""
    return User.objects.create_user(
        email="admin@example.com",
        password="secret",
        fullname="Ben Admin",
        role=User.ROLE_ADMIN,
    )


@pytest.fixture
def super_admin(db):
    """Super admin allowed to purge any record."""
    return User.objects.create_user(
        email="super@example.com",
        password="secret",
        fullname="Cora Super",
        role=User.ROLE_SUPER_ADMIN,
    )


@pytest.fixture
def lookups(db):
    """Code table entries referenced by the budget records."""
    return {
        "gad": Particular.objects.create(code="GAD", name="Gender and Development"),
        "df": Particular.objects.create(code="20DF", name="20% Development Fund"),
        "peo": ImplementingOffice.objects.create(
            code="PEO", name="PEO", full_name="Provincial Engineering Office"
        ),
        "tph": ImplementingOffice.objects.create(
            code="TPH", name="TPH", full_name="Tarlac Provincial Hospital"
        ),
        "infra": Category.objects.create(code="INFRA", name="Infrastructure"),
        "health": Category.objects.create(code="HEALTH", name="Health"),
        "retired": Category.objects.create(code="RETIRED", name="Retired", is_active=False),
    }


class TreeBuilder:
    """Creates records through the services so counters and rollups stay consistent."""

    def __init__(self, actor):
        self.actor = actor

    def allocation(self, **fields):
        payload = {
            "particular_code": "GAD",
            "year": 2025,
            "total_allocated": "1000000.00",
            **fields,
        }
        return services.create_node(Allocation, self.actor, payload)

    def project(self, allocation=None, **fields):
        payload = {
            "allocation": allocation.pk if allocation else None,
            "particular_code": "GAD",
            "implementing_office_code": "PEO",
            "category_code": "INFRA",
            "year": 2025,
            "total_allocated": "500000.00",
            **fields,
        }
        return services.create_node(Project, self.actor, payload)

    def report(self, project=None, **fields):
        payload = {
            "project": project.pk if project else None,
            "project_name": "Road Concreting",
            "implementing_office_code": "PEO",
            "allocated_budget": "100000.00",
            "obligated_budget": "0.00",
            "budget_utilized": "0.00",
            "status": "ongoing",
            **fields,
        }
        return services.create_node(Report, self.actor, payload)

    def fund_record(self, **fields):
        payload = {
            "particulars": "Hospital Trust Fund",
            "implementing_office_code": "TPH",
            "category_code": "HEALTH",
            "year": 2025,
            "total_allocated": "200000.00",
            **fields,
        }
        return services.create_node(FundRecord, self.actor, payload)

    def fund_report(self, fund_record=None, **fields):
        payload = {
            "fund_record": fund_record.pk if fund_record else None,
            "project_name": "Medical Equipment",
            "implementing_office_code": "TPH",
            "allocated_budget": "50000.00",
            "obligated_budget": "0.00",
            "budget_utilized": "0.00",
            "status": "ongoing",
            **fields,
        }
        return services.create_node(FundReport, self.actor, payload)


@pytest.fixture
def build(encoder, lookups):
    """Factory for budget records owned by the encoder."""
    return TreeBuilder(encoder)


@pytest.fixture
def reload():
    """Fetch a fresh copy of a record, trashed or not."""
    def _reload(instance):
        return type(instance).all_objects.get(pk=instance.pk)
    return _reload


@pytest.fixture
def tree(build):
    """
    Allocation -> Project -> two Reports.

    Project figures: obligated 300,000, utilized 150,000, 30% of 500,000, delayed.
    """
    allocation = build.allocation()
    project = build.project(allocation)
    completed = build.report(
        project,
        project_name="Drainage Canal",
        obligated_budget="100000.00",
        budget_utilized="50000.00",
        status="completed",
    )
    delayed = build.report(
        project,
        project_name="Farm-to-Market Road",
        allocated_budget="250000.00",
        obligated_budget="200000.00",
        budget_utilized="100000.00",
        status="delayed",
    )
    return {
        "allocation": allocation,
        "project": project,
        "completed": completed,
        "delayed": delayed,
    }
