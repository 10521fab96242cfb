from django import forms
from django.db.models import Q
from django.forms.models import model_to_dict
from .models import Allocation, Project, Report, FundRecord, FundReport


ROLLUP_INPUT_FIELDS = ['total_allocated', 'total_utilized', 'auto_calculate_utilized', 'year', 'remarks']

REPORT_INPUT_FIELDS = [
    'project_name', 'project_title', 'implementing_office_code',
    'allocated_budget', 'obligated_budget', 'budget_utilized', 'balance', 'fund_source',
    'project_accomplishment', 'status',
    'report_date', 'date_started', 'target_date', 'completion_date',
    'municipality', 'barangay', 'district', 'remarks',
]


class NodeForm(forms.ModelForm):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        parent_field = self._meta.model.PARENT_FIELD
        if parent_field and self.instance.pk and self.instance.parent_pk:
            # A node may keep its current parent even while that parent is in the trash
            field = self.fields[parent_field]
            parent_model = field.queryset.model
            field.queryset = parent_model.all_objects.filter(
                Q(is_deleted=False) | Q(pk=self.instance.parent_pk)
            )


class AllocationForm(NodeForm):
    class Meta:
        model = Allocation
        fields = ['particular_code'] + ROLLUP_INPUT_FIELDS


class ProjectForm(NodeForm):
    # Only live allocations can receive projects
    allocation = forms.ModelChoiceField(queryset=Allocation.objects.all(), required=False)

    class Meta:
        model = Project
        fields = [
            'allocation', 'particular_code', 'implementing_office_code', 'category_code',
            'target_date_completion',
        ] + ROLLUP_INPUT_FIELDS


class ReportForm(NodeForm):
    project = forms.ModelChoiceField(queryset=Project.objects.all(), required=False)

    class Meta:
        model = Report
        fields = ['project'] + REPORT_INPUT_FIELDS

    def clean_project_accomplishment(self):
        value = self.cleaned_data.get('project_accomplishment')
        if value is not None and not (0 <= value <= 100):
            raise forms.ValidationError("Accomplishment must be between 0 and 100.")
        return value


class FundRecordForm(NodeForm):
    class Meta:
        model = FundRecord
        fields = [
            'particulars', 'implementing_office_code', 'category_code', 'target_date_completion',
        ] + ROLLUP_INPUT_FIELDS


class FundReportForm(ReportForm):
    project = None
    fund_record = forms.ModelChoiceField(queryset=FundRecord.objects.all(), required=False)

    class Meta:
        model = FundReport
        fields = ['fund_record'] + REPORT_INPUT_FIELDS


NODE_FORMS = {
    Allocation: AllocationForm,
    Project: ProjectForm,
    Report: ReportForm,
    FundRecord: FundRecordForm,
    FundReport: FundReportForm,
}


def bind_form(model, payload, instance=None):
    """
    Build a bound form for a full or partial payload.

    Fields missing from the payload keep the instance's current values (or the
    model defaults on create), so partial updates validate like full ones.

    Returns:
        (form, unknown_keys)
    """
    form_class = NODE_FORMS[model]
    field_names = form_class._meta.fields

    data = model_to_dict(instance if instance is not None else model(), fields=field_names)
    data.update({key: value for key, value in payload.items() if key in field_names})
    unknown = sorted(set(payload) - set(field_names))

    return form_class(data=data, instance=instance), unknown
