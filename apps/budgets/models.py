from django.db import models
from apps.user_accounts.models import User
from decimal import Decimal
from .managers import SoftDeleteManager
from .metrics import (
    STATUS_CHOICES,
    STATUS_ONGOING,
    ChildSummary,
    leaf_financials,
)

MONEY = {'max_digits': 15, 'decimal_places': 2}
RATE = {'max_digits': 20, 'decimal_places': 2}


class SoftDeleteModel(models.Model):
    """Trash support shared by every node of the budget trees"""
    DELETION_MANUAL = 'MANUAL'
    DELETION_CASCADE = 'CASCADE'
    DELETION_TYPE_CHOICES = [
        (DELETION_MANUAL, 'Moved to trash'),
        (DELETION_CASCADE, 'Trashed with parent'),
    ]

    is_deleted = models.BooleanField(default=False, db_index=True)
    deleted_at = models.DateTimeField(null=True, blank=True)
    deleted_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='trashed_%(class)ss'
    )
    deletion_reason = models.TextField(blank=True)
    deletion_type = models.CharField(max_length=20, choices=DELETION_TYPE_CHOICES, blank=True)
    # Shared by the trashed node and every descendant trashed along with it,
    # so restore only brings back what that one trash action hid.
    deletion_batch = models.UUIDField(null=True, blank=True, db_index=True)

    # Managers
    objects = SoftDeleteManager()  # Default: excludes trashed
    all_objects = models.Manager()  # Fallback: includes everything

    class Meta:
        abstract = True


class AuditStampedModel(models.Model):
    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_%(class)ss'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='updated_%(class)ss'
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class BudgetNode(SoftDeleteModel, AuditStampedModel):
    """
    A node of one of the budget trees.

    Subclasses describe their position in the tree with class attributes:
        KIND: key used in activity records and bulk results
        PARENT_FIELD: name of the FK to the parent node (None for roots)
        CHILD_MODEL / CHILD_PARENT_FIELD: child model name and its FK back to us
        LOOKUP_FIELDS: {field_name: lookup_kind} for referenced code-table entries
    """
    KIND = None
    PARENT_FIELD = None
    CHILD_MODEL = None
    CHILD_PARENT_FIELD = None
    LOOKUP_FIELDS = {}
    IS_ROLLUP = False

    class Meta:
        abstract = True

    @classmethod
    def child_model(cls):
        if not cls.CHILD_MODEL:
            return None
        return cls._meta.apps.get_model(cls._meta.app_label, cls.CHILD_MODEL)

    @classmethod
    def parent_model(cls):
        if not cls.PARENT_FIELD:
            return None
        return cls._meta.get_field(cls.PARENT_FIELD).related_model

    @property
    def parent_pk(self):
        if not self.PARENT_FIELD:
            return None
        return getattr(self, f'{self.PARENT_FIELD}_id')

    def children_queryset(self):
        """All direct children, trashed ones included"""
        child_model = self.child_model()
        if child_model is None:
            return None
        return child_model.all_objects.filter(**{self.CHILD_PARENT_FIELD: self.pk})


class RollupNode(BudgetNode):
    """Node whose obligated/utilized totals, rate and status roll up from its children"""
    IS_ROLLUP = True
    COUNT_LABEL = 'breakdownsCount'
    ROLLUP_FIELDS = [
        'total_obligated',
        'total_utilized',
        'utilization_rate',
        'status',
        'ongoing_count',
        'delayed_count',
        'completed_count',
    ]

    total_allocated = models.DecimalField(**MONEY, default=Decimal('0.00'))
    total_obligated = models.DecimalField(**MONEY, default=Decimal('0.00'))
    total_utilized = models.DecimalField(**MONEY, default=Decimal('0.00'))
    utilization_rate = models.DecimalField(**RATE, default=Decimal('0.00'))
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_ONGOING)
    # When False, total_utilized is entered by hand and rollups leave it alone
    auto_calculate_utilized = models.BooleanField(default=True)

    ongoing_count = models.PositiveIntegerField(default=0)
    delayed_count = models.PositiveIntegerField(default=0)
    completed_count = models.PositiveIntegerField(default=0)

    year = models.PositiveIntegerField(null=True, blank=True, db_index=True)
    remarks = models.TextField(blank=True)

    is_pinned = models.BooleanField(default=False)
    pinned_at = models.DateTimeField(null=True, blank=True)
    pinned_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='pinned_%(class)ss'
    )

    class Meta:
        abstract = True

    def as_child_summary(self):
        return ChildSummary(self.total_obligated, self.total_utilized, self.status)

    def rollup_snapshot(self):
        """The figures a parent reads from this node"""
        return (self.total_obligated, self.total_utilized, self.utilization_rate, self.status)

    def apply_metrics(self, metrics):
        self.total_obligated = metrics.obligated
        self.total_utilized = metrics.utilized
        self.utilization_rate = metrics.rate
        self.status = metrics.status
        self.ongoing_count = metrics.status_counts['ongoing']
        self.delayed_count = metrics.status_counts['delayed']
        self.completed_count = metrics.status_counts['completed']


class LeafReport(BudgetNode):
    """Dated progress/financial entry; the unit rollups read but never recompute"""
    project_name = models.CharField(max_length=255)
    project_title = models.CharField(max_length=500, blank=True)
    implementing_office_code = models.CharField(max_length=50)

    allocated_budget = models.DecimalField(**MONEY, null=True, blank=True)
    obligated_budget = models.DecimalField(**MONEY, null=True, blank=True)
    budget_utilized = models.DecimalField(**MONEY, null=True, blank=True)
    balance = models.DecimalField(**MONEY, null=True, blank=True)
    utilization_rate = models.DecimalField(**RATE, default=Decimal('0.00'))
    fund_source = models.CharField(max_length=100, blank=True)

    project_accomplishment = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, null=True, blank=True)

    report_date = models.DateField(null=True, blank=True)
    date_started = models.DateField(null=True, blank=True)
    target_date = models.DateField(null=True, blank=True)
    completion_date = models.DateField(null=True, blank=True)

    municipality = models.CharField(max_length=255, blank=True)
    barangay = models.CharField(max_length=255, blank=True)
    district = models.CharField(max_length=255, blank=True)
    remarks = models.TextField(blank=True)

    class Meta:
        abstract = True

    def __str__(self):
        return f"{self.project_name} ({self.implementing_office_code})"

    def save(self, *args, **kwargs):
        # Keep the report's own balance and rate in step with its figures
        self.balance, self.utilization_rate = leaf_financials(
            self.allocated_budget, self.budget_utilized, self.balance
        )
        update_fields = kwargs.get('update_fields')
        if update_fields is not None:
            kwargs['update_fields'] = set(update_fields) | {'balance', 'utilization_rate'}
        super().save(*args, **kwargs)

    def as_child_summary(self):
        return ChildSummary(self.obligated_budget, self.budget_utilized, self.status)


class Allocation(RollupNode):
    """Top-level budget line item for a fiscal year"""
    KIND = 'allocation'
    CHILD_MODEL = 'Project'
    CHILD_PARENT_FIELD = 'allocation'
    LOOKUP_FIELDS = {'particular_code': 'particular'}
    COUNT_LABEL = 'projectsCount'

    particular_code = models.CharField(max_length=50)

    class Meta:
        ordering = ['-year', 'particular_code']
        verbose_name = "Allocation"
        verbose_name_plural = "Allocations"
        indexes = [
            models.Index(fields=['particular_code', 'year']),
        ]

    def __str__(self):
        return f"{self.particular_code} ({self.year}) - ₱{self.total_allocated:,.2f}"


class Project(RollupNode):
    """A funded initiative under one Allocation"""
    KIND = 'project'
    PARENT_FIELD = 'allocation'
    CHILD_MODEL = 'Report'
    CHILD_PARENT_FIELD = 'project'
    LOOKUP_FIELDS = {
        'particular_code': 'particular',
        'implementing_office_code': 'implementing_office',
        'category_code': 'category',
    }

    allocation = models.ForeignKey(
        Allocation,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='projects'
    )
    particular_code = models.CharField(max_length=50)
    implementing_office_code = models.CharField(max_length=50)
    category_code = models.CharField(max_length=50, blank=True)
    target_date_completion = models.DateField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name = "Project"
        verbose_name_plural = "Projects"

    def __str__(self):
        return f"{self.particular_code} / {self.implementing_office_code} - ₱{self.total_allocated:,.2f}"


class Report(LeafReport):
    """Progress/financial breakdown filed against a Project"""
    KIND = 'report'
    PARENT_FIELD = 'project'
    LOOKUP_FIELDS = {'implementing_office_code': 'implementing_office'}

    project = models.ForeignKey(
        Project,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='reports'
    )

    class Meta:
        ordering = ['-report_date', '-created_at']
        verbose_name = "Report"
        verbose_name_plural = "Reports"


class FundRecord(RollupNode):
    """Separately tracked fund line; its reports roll up directly into it"""
    KIND = 'fund_record'
    CHILD_MODEL = 'FundReport'
    CHILD_PARENT_FIELD = 'fund_record'
    LOOKUP_FIELDS = {
        'implementing_office_code': 'implementing_office',
        'category_code': 'category',
    }

    particulars = models.CharField(max_length=255)
    implementing_office_code = models.CharField(max_length=50)
    category_code = models.CharField(max_length=50, blank=True)
    target_date_completion = models.DateField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name = "Fund Record"
        verbose_name_plural = "Fund Records"

    def __str__(self):
        return f"{self.particulars} - ₱{self.total_allocated:,.2f}"


class FundReport(LeafReport):
    """Progress/financial breakdown filed against a Fund Record"""
    KIND = 'fund_report'
    PARENT_FIELD = 'fund_record'
    LOOKUP_FIELDS = {'implementing_office_code': 'implementing_office'}

    fund_record = models.ForeignKey(
        FundRecord,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='reports'
    )

    class Meta:
        ordering = ['-report_date', '-created_at']
        verbose_name = "Fund Report"
        verbose_name_plural = "Fund Reports"


NODE_MODELS = {
    model.KIND: model
    for model in (Allocation, Project, Report, FundRecord, FundReport)
}
