from django.contrib import admin
from .models import Allocation, Project, Report, FundRecord, FundReport

TRASH_FIELDSET = ('Trash', {
    'fields': ('is_deleted', 'deleted_at', 'deleted_by', 'deletion_type', 'deletion_reason', 'deletion_batch'),
    'classes': ('collapse',)
})
TRASH_READONLY = ['is_deleted', 'deleted_at', 'deleted_by', 'deletion_type', 'deletion_reason', 'deletion_batch']


class BudgetNodeAdmin(admin.ModelAdmin):
    """
    Shows trashed rows too. Adding, deleting, re-parenting and anything that
    moves a usage counter or a rolled-up figure go through the budget services.
    """
    figure_fields = []

    def get_queryset(self, request):
        return self.model.objects.with_trashed()

    def get_readonly_fields(self, request, obj=None):
        locked = [self.model.PARENT_FIELD] if self.model.PARENT_FIELD else []
        locked += list(self.model.LOOKUP_FIELDS) + self.figure_fields
        return list(self.readonly_fields) + [field for field in locked if field not in self.readonly_fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class RollupNodeAdmin(BudgetNodeAdmin):
    figure_fields = ['total_allocated', 'total_utilized', 'auto_calculate_utilized', 'is_pinned']
    list_filter = ['status', 'year', 'auto_calculate_utilized', 'is_deleted', 'is_pinned']
    readonly_fields = [
        'total_obligated', 'utilization_rate', 'status',
        'ongoing_count', 'delayed_count', 'completed_count',
        'created_at', 'updated_at', 'pinned_at', 'pinned_by',
    ] + TRASH_READONLY

    def get_allocated(self, obj):
        """Display allocated amount with currency"""
        return f"₱{obj.total_allocated:,.2f}"
    get_allocated.short_description = 'Allocated'
    get_allocated.admin_order_field = 'total_allocated'

    def get_utilized(self, obj):
        """Display utilized amount with currency"""
        return f"₱{obj.total_utilized:,.2f}"
    get_utilized.short_description = 'Utilized'
    get_utilized.admin_order_field = 'total_utilized'

    def get_utilization(self, obj):
        return f"{obj.utilization_rate:.2f}%"
    get_utilization.short_description = 'Utilization'


@admin.register(Allocation)
class AllocationAdmin(RollupNodeAdmin):
    list_display = ['particular_code', 'year', 'get_allocated', 'get_utilized', 'get_utilization', 'status', 'is_deleted']
    search_fields = ['particular_code', 'remarks']

    fieldsets = (
        ('Allocation', {
            'fields': ('particular_code', 'year', 'total_allocated', 'remarks')
        }),
        ('Rolled-up Figures', {
            'fields': ('auto_calculate_utilized', 'total_obligated', 'total_utilized', 'utilization_rate', 'status',
                       'ongoing_count', 'delayed_count', 'completed_count')
        }),
        ('Pin', {
            'fields': ('is_pinned', 'pinned_at', 'pinned_by'),
            'classes': ('collapse',)
        }),
        TRASH_FIELDSET,
    )


@admin.register(Project)
class ProjectAdmin(RollupNodeAdmin):
    list_display = ['particular_code', 'implementing_office_code', 'allocation', 'get_allocated', 'get_utilized', 'status', 'is_deleted']
    search_fields = ['particular_code', 'implementing_office_code', 'category_code', 'remarks']

    fieldsets = (
        ('Project', {
            'fields': ('allocation', 'particular_code', 'implementing_office_code', 'category_code',
                       'year', 'total_allocated', 'target_date_completion', 'remarks')
        }),
        ('Rolled-up Figures', {
            'fields': ('auto_calculate_utilized', 'total_obligated', 'total_utilized', 'utilization_rate', 'status',
                       'ongoing_count', 'delayed_count', 'completed_count')
        }),
        TRASH_FIELDSET,
    )


@admin.register(FundRecord)
class FundRecordAdmin(RollupNodeAdmin):
    list_display = ['particulars', 'implementing_office_code', 'get_allocated', 'get_utilized', 'status', 'is_deleted']
    search_fields = ['particulars', 'implementing_office_code', 'category_code']


class LeafReportAdmin(BudgetNodeAdmin):
    figure_fields = ['allocated_budget', 'obligated_budget', 'budget_utilized', 'status']
    list_display = ['project_name', 'implementing_office_code', 'get_allocated', 'get_utilized', 'status', 'report_date', 'is_deleted']
    list_filter = ['status', 'is_deleted', 'report_date']
    search_fields = ['project_name', 'project_title', 'implementing_office_code', 'municipality', 'barangay']
    readonly_fields = ['balance', 'utilization_rate', 'created_at', 'updated_at'] + TRASH_READONLY
    date_hierarchy = 'report_date'

    def get_allocated(self, obj):
        return f"₱{obj.allocated_budget or 0:,.2f}"
    get_allocated.short_description = 'Allocated'

    def get_utilized(self, obj):
        return f"₱{obj.budget_utilized or 0:,.2f}"
    get_utilized.short_description = 'Utilized'


admin.site.register(Report, LeafReportAdmin)
admin.site.register(FundReport, LeafReportAdmin)
