import json
import logging
from functools import wraps

from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.http import require_POST

from apps.audit.utils import snapshot
from . import services
from .exceptions import BudgetError, NotFound, Unauthorized, ValidationError
from .models import Allocation, Project, Report, FundRecord, FundReport

logger = logging.getLogger(__name__)

# URL segment -> model
URL_KINDS = {
    'allocations': Allocation,
    'projects': Project,
    'reports': Report,
    'fund-records': FundRecord,
    'fund-reports': FundReport,
}


def get_model(kind):
    try:
        return URL_KINDS[kind]
    except KeyError:
        raise NotFound(f"Unknown record type: {kind}")


def read_json(request):
    try:
        data = json.loads(request.body or b'{}')
    except (ValueError, UnicodeDecodeError):
        raise ValidationError("Request body is not valid JSON.")
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


def read_ids(data):
    ids = data.get('ids')
    if not isinstance(ids, list) or not ids:
        raise ValidationError("No records selected.")
    try:
        return [int(pk) for pk in ids]
    except (TypeError, ValueError):
        raise ValidationError("Record ids must be integers.")


def read_enabled(data):
    enabled = data.get('enabled')
    if not isinstance(enabled, bool):
        raise ValidationError('"enabled" must be true or false.')
    return enabled


def json_endpoint(view):
    """Turn BudgetError into a {success: false, code, message} response"""
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except BudgetError as e:
            logger.info("%s %s failed: %s %s", request.method, request.path, e.code, e.message)
            return JsonResponse({'success': False, **e.as_dict()}, status=e.status_code)
    return wrapper


def require_bulk_role(user):
    if not user.can_run_bulk_actions():
        raise Unauthorized("You are not allowed to run bulk actions.")


@login_required
@require_POST
@json_endpoint
def create_node(request, kind):
    model = get_model(kind)
    node = services.create_node(model, request.user, read_json(request))
    return JsonResponse({
        'success': True,
        'message': f"{model._meta.verbose_name} created successfully.",
        'id': node.pk,
        'data': snapshot(node),
    })


@login_required
@require_POST
@json_endpoint
def update_node(request, kind, pk):
    model = get_model(kind)
    data = read_json(request)
    reason = data.pop('reason', '')
    node = services.update_node(model, pk, request.user, data, reason=reason)
    return JsonResponse({
        'success': True,
        'message': f"{model._meta.verbose_name} updated successfully.",
        'id': node.pk,
        'data': snapshot(node),
    })


@login_required
@require_POST
@json_endpoint
def trash_node(request, kind, pk):
    model = get_model(kind)
    data = read_json(request)
    result = services.trash(model, pk, request.user, reason=data.get('reason', ''))
    return JsonResponse({
        'success': True,
        'message': f"{model._meta.verbose_name} moved to trash.",
        **result.as_dict(),
    })


@login_required
@require_POST
@json_endpoint
def restore_node(request, kind, pk):
    model = get_model(kind)
    data = read_json(request)
    result = services.restore(model, pk, request.user, reason=data.get('reason', ''))
    return JsonResponse({
        'success': True,
        'message': f"{model._meta.verbose_name} restored successfully.",
        **result.as_dict(),
    })


@login_required
@require_POST
@json_endpoint
def purge_node(request, kind, pk):
    model = get_model(kind)
    data = read_json(request)
    node = services.get_node(model, pk)
    if not request.user.can_purge(node):
        raise Unauthorized("Only the creator or a super admin can permanently delete this record.")

    result = services.purge(model, pk, request.user, reason=data.get('reason', ''))
    return JsonResponse({
        'success': True,
        'message': f"{model._meta.verbose_name} permanently deleted.",
        **result.as_dict(),
    })


@login_required
@require_POST
@json_endpoint
def recalculate_node(request, kind, pk):
    model = get_model(kind)
    if not model.IS_ROLLUP:
        raise ValidationError(f"{model._meta.verbose_name_plural} have no rolled-up figures.")
    summary = services.refresh_node(model, pk, request.user)
    return JsonResponse({'success': True, **summary.as_dict()})


@login_required
@require_POST
@json_endpoint
def toggle_auto_calculate(request, kind, pk):
    model = get_model(kind)
    data = read_json(request)
    summary = services.toggle_auto_calculate(
        model, pk, request.user, read_enabled(data), reason=data.get('reason', '')
    )
    return JsonResponse({'success': True, **summary.as_dict()})


@login_required
@require_POST
@json_endpoint
def toggle_pin(request, kind, pk):
    model = get_model(kind)
    if not request.user.can_pin():
        raise Unauthorized("Only administrators can pin records.")
    node = services.toggle_pin(model, pk, request.user)
    state = "pinned" if node.is_pinned else "unpinned"
    return JsonResponse({
        'success': True,
        'message': f"{model._meta.verbose_name} {state}.",
        'is_pinned': node.is_pinned,
    })


def bulk_response(result, verb):
    return JsonResponse({
        'success': True,
        'message': f"{result.count} of {result.total} record(s) {verb}.",
        **result.as_dict(),
    })


@login_required
@require_POST
@json_endpoint
def bulk_trash(request, kind):
    model = get_model(kind)
    require_bulk_role(request.user)
    data = read_json(request)
    result = services.bulk_trash(model, read_ids(data), request.user, reason=data.get('reason', ''))
    return bulk_response(result, 'moved to trash')


@login_required
@require_POST
@json_endpoint
def bulk_restore(request, kind):
    model = get_model(kind)
    require_bulk_role(request.user)
    data = read_json(request)
    result = services.bulk_restore(model, read_ids(data), request.user, reason=data.get('reason', ''))
    return bulk_response(result, 'restored')


@login_required
@require_POST
@json_endpoint
def bulk_update_category(request, kind):
    model = get_model(kind)
    require_bulk_role(request.user)
    data = read_json(request)
    result = services.bulk_update_category(
        model, read_ids(data), request.user,
        data.get('category_code', ''), reason=data.get('reason', ''),
    )
    return bulk_response(result, 'updated')


@login_required
@require_POST
@json_endpoint
def bulk_toggle_auto_calculate(request, kind):
    model = get_model(kind)
    require_bulk_role(request.user)
    data = read_json(request)
    result = services.bulk_toggle_auto_calculate(
        model, read_ids(data), request.user, read_enabled(data), reason=data.get('reason', ''),
    )
    return bulk_response(result, 'updated')
