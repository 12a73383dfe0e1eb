import json
import logging
from functools import wraps

from django.contrib.auth.decorators import login_required
from django.core.exceptions import PermissionDenied
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from academics.services import AcademicYearService
from .exceptions import FinanceError, FinanceSystemError, InvalidRequest
from .requests import (
    parse_bill_filters,
    parse_payment_request,
    parse_quote_request,
    parse_savings_correction,
    parse_savings_request,
)
from .services import BillingService, SavingsService, ScholarshipService, TuitionRateService

logger = logging.getLogger(__name__)


def require_finance_access():
    """Decorator: principal, manager, or accountant."""

    def decorator(view_func):
        @wraps(view_func)
        def _wrapped(request, *args, **kwargs):
            if request.user.can_manage_finance:
                return view_func(request, *args, **kwargs)
            raise PermissionDenied("Only principals, managers, and accountants can access this.")
        return _wrapped
    return decorator


def json_endpoint(view_func):
    """Serialize the view's result, and FinanceErrors, as JSON responses."""

    @wraps(view_func)
    def _wrapped(request, *args, **kwargs):
        try:
            data, message, status = view_func(request, *args, **kwargs)
        except FinanceError as e:
            return JsonResponse(e.as_dict(), status=e.status_code)
        except Exception:
            logger.error(f"Unexpected error in {view_func.__name__}", exc_info=True)
            error = FinanceSystemError()
            return JsonResponse(error.as_dict(), status=error.status_code)
        return JsonResponse({'status': 'success', 'message': message, 'data': data}, status=status)
    return _wrapped


def _body(request):
    try:
        body = json.loads(request.body or b'{}')
    except (ValueError, UnicodeDecodeError):
        raise InvalidRequest({'__all__': ['Request body is not valid JSON.']})
    if not isinstance(body, dict):
        raise InvalidRequest({'__all__': ['Request body must be a JSON object.']})
    return body


def _year_param(request):
    value = request.GET.get('year')
    if value in (None, ''):
        return None
    try:
        return int(value)
    except ValueError:
        raise InvalidRequest({'year': ['Enter a whole number.']})


# ═══ Tuition ══════════════════════════════════════════════════════

@login_required
@require_finance_access()
@require_GET
@json_endpoint
def unpaid_months(request, student_id):
    months = BillingService.compute_unpaid_months(student_id)
    return {'student_id': student_id, 'unpaid_months': months}, 'Unpaid months retrieved', 200


@login_required
@require_finance_access()
@require_GET
@json_endpoint
def student_bills(request, student_id):
    return BillingService.student_bills(student_id), 'Bills retrieved', 200


@login_required
@require_finance_access()
@require_GET
@json_endpoint
def students_with_bills(request):
    students = BillingService.students_with_bills(parse_bill_filters(request.GET))
    return {'count': len(students), 'students': students}, 'Student bills retrieved', 200


@login_required
@require_finance_access()
@require_POST
@json_endpoint
def payment_quote(request, student_id):
    months, payment_date = parse_quote_request(_body(request))
    quote = BillingService.quote(student_id, months, payment_date)
    return quote, 'Payment quote calculated', 200


@login_required
@require_finance_access()
@require_GET
@json_endpoint
def payment_history(request, student_id):
    history = BillingService.payment_history(student_id, _year_param(request))
    return {'student_id': student_id, 'payments': history}, 'Payment history retrieved', 200


@login_required
@require_finance_access()
@require_POST
@json_endpoint
def record_payment(request):
    payment = BillingService.record_payment(parse_payment_request(_body(request)), request.user)
    return BillingService.summarize(payment), 'Payment recorded', 201


@login_required
@require_finance_access()
@require_GET
@json_endpoint
def payment_detail(request, payment_id):
    return BillingService.payment_detail(payment_id), 'Payment retrieved', 200


@login_required
@require_finance_access()
@require_POST
@json_endpoint
def update_payment(request, payment_id):
    payment_request = parse_payment_request(_body(request), update=True)
    payment = BillingService.update_payment(payment_id, payment_request, request.user)
    return BillingService.summarize(payment), 'Payment updated', 200


@login_required
@require_finance_access()
@require_POST
@json_endpoint
def delete_payment(request, payment_id):
    receipt_number = BillingService.delete_payment(payment_id)
    return {'receipt_number': receipt_number}, 'Payment deleted', 200


# ═══ Savings ══════════════════════════════════════════════════════

@login_required
@require_finance_access()
@require_GET
@json_endpoint
def student_savings(request, student_id):
    return SavingsService.student_savings(student_id), 'Savings retrieved', 200


@login_required
@require_finance_access()
@require_GET
@json_endpoint
def savings_balances(request):
    balances = SavingsService.all_balances()
    return {'count': len(balances), 'students': balances}, 'Savings balances retrieved', 200


@login_required
@require_finance_access()
@require_POST
@json_endpoint
def record_savings(request):
    entry = SavingsService.record_transaction(parse_savings_request(_body(request)), request.user)
    return SavingsService.summarize(entry), 'Savings transaction recorded', 201


@login_required
@require_finance_access()
@require_GET
@json_endpoint
def savings_detail(request, transaction_id):
    return SavingsService.transaction_detail(transaction_id), 'Savings transaction retrieved', 200


@login_required
@require_finance_access()
@require_POST
@json_endpoint
def update_savings(request, transaction_id):
    entry = SavingsService.update_transaction(transaction_id, parse_savings_correction(_body(request)))
    return SavingsService.summarize(entry), 'Savings transaction updated', 200


@login_required
@require_finance_access()
@require_POST
@json_endpoint
def delete_savings(request, transaction_id):
    number = SavingsService.delete_transaction(transaction_id)
    return {'transaction_number': number}, 'Savings transaction deleted', 200


# ═══ Scholarships ═════════════════════════════════════════════════

@login_required
@require_finance_access()
@require_POST
@json_endpoint
def create_scholarship(request):
    scholarship = ScholarshipService.create_scholarship(_body(request), actor=request.user)
    return ScholarshipService.summarize(scholarship), 'Scholarship created', 201


@login_required
@require_finance_access()
@require_POST
@json_endpoint
def update_scholarship(request, pk):
    scholarship = ScholarshipService.update_scholarship(pk, _body(request))
    return ScholarshipService.summarize(scholarship), 'Scholarship updated', 200


@login_required
@require_finance_access()
@require_POST
@json_endpoint
def delete_scholarship(request, pk):
    ScholarshipService.delete_scholarship(pk)
    return {'id': pk}, 'Scholarship deleted', 200


@login_required
@require_finance_access()
@require_GET
@json_endpoint
def student_scholarships(request, student_id):
    return ScholarshipService.list_by_student(student_id), 'Scholarships retrieved', 200


@login_required
@require_finance_access()
@require_GET
@json_endpoint
def scholarship_summary(request):
    return ScholarshipService.summary(), 'Scholarship summary retrieved', 200


# ═══ Tuition rates & academic years ═══════════════════════════════

def _rate_dict(rate):
    return {
        'id': rate.pk,
        'academic_year_id': rate.academic_year_id,
        'grade_level': rate.grade_level,
        'monthly_amount': rate.monthly_amount,
        'due_date': rate.due_date,
        'late_fee_enabled': rate.late_fee_enabled,
        'late_fee_type': rate.late_fee_type,
        'late_fee_amount': rate.late_fee_amount,
        'late_fee_start_day': rate.late_fee_start_day,
    }


@login_required
@require_finance_access()
@require_http_methods(['GET', 'POST'])
@json_endpoint
def tuition_rates(request):
    if request.method == 'POST':
        rate = TuitionRateService.create_rate(_body(request))
        return _rate_dict(rate), 'Tuition rate created', 201
    rates = TuitionRateService.list_rates(request.GET.get('academic_year_id'))
    return [_rate_dict(r) for r in rates], 'Tuition rates retrieved', 200


@login_required
@require_finance_access()
@require_POST
@json_endpoint
def update_tuition_rate(request, pk):
    rate = TuitionRateService.update_rate(pk, _body(request))
    return _rate_dict(rate), 'Tuition rate updated', 200


@login_required
@require_finance_access()
@require_POST
@json_endpoint
def delete_tuition_rate(request, pk):
    label = TuitionRateService.delete_rate(pk)
    return {'id': pk, 'tuition_rate': label}, 'Tuition rate deleted', 200


@login_required
@require_finance_access()
@require_http_methods(['GET', 'POST'])
@json_endpoint
def academic_years(request):
    if request.method == 'POST':
        academic_year = AcademicYearService.create_academic_year(_body(request))
        return AcademicYearService.summarize(academic_year), 'Academic year created', 201
    years = AcademicYearService.list_academic_years()
    return [AcademicYearService.summarize(ay) for ay in years], 'Academic years retrieved', 200


@login_required
@require_finance_access()
@require_GET
@json_endpoint
def academic_year_detail(request, pk):
    academic_year = AcademicYearService.get_academic_year(pk)
    return AcademicYearService.summarize(academic_year), 'Academic year retrieved', 200


@login_required
@require_finance_access()
@require_POST
@json_endpoint
def update_academic_year(request, pk):
    academic_year = AcademicYearService.update_academic_year(pk, _body(request))
    return AcademicYearService.summarize(academic_year), 'Academic year updated', 200


@login_required
@require_finance_access()
@require_POST
@json_endpoint
def activate_academic_year(request, pk):
    academic_year = AcademicYearService.activate(pk)
    return {'id': academic_year.pk, 'name': academic_year.name, 'is_active': True}, 'Academic year activated', 200


@login_required
@require_finance_access()
@require_POST
@json_endpoint
def delete_academic_year(request, pk):
    name = AcademicYearService.delete_academic_year(pk)
    return {'id': pk, 'name': name}, 'Academic year deleted', 200
