"""
Tuition (SPP) billing.

Works out which months a student still owes, quotes and records payments,
and allows the latest payment to be corrected or removed. Every write
locks the student row first so concurrent payments for one student are
serialized, and checks run against the paid months read under that lock.
"""

import logging
from collections import defaultdict

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from students.models import Student
from ..billing import unpaid_months, validate_payment, check_within_academic_year
from ..calculations import ZERO, due_date_for, late_fee_for_month
from ..exceptions import FinanceError, InvalidRequest, NotFoundError, NotLastEntry, PaymentLocked
from ..models import SppPayment, SppPaymentDetail
from ..numbering import next_receipt_number
from ..requests import PaymentLine
from .base import get_student, get_tuition_rate, lock_student, resolve_academic_year
from .scholarships import ScholarshipService

logger = logging.getLogger(__name__)


class BillingService:

    # ─── reads ────────────────────────────────────────────────────

    @staticmethod
    def paid_details(student, academic_year, exclude_payment=None):
        qs = SppPaymentDetail.objects.filter(
            payment__student=student, payment__academic_year=academic_year
        ).select_related('payment')
        if exclude_payment is not None:
            qs = qs.exclude(payment=exclude_payment)
        return {(d.month, d.year): d for d in qs}

    @staticmethod
    def compute_unpaid_months(student_id, academic_year=None):
        """
        Months of the academic year the student has not paid yet.

        Returns:
            list of {'month', 'year', 'month_name'}, earliest first.
        """
        student = get_student(student_id)
        academic_year = academic_year or resolve_academic_year(student)
        paid = BillingService.paid_details(student, academic_year)
        return [
            {'month': item.month, 'year': item.year, 'month_name': item.month_name}
            for item in unpaid_months(academic_year.academic_months(), paid)
        ]

    @staticmethod
    def student_bills(student_id, today=None):
        """Month-by-month tuition statement for the student's academic year."""
        today = today or timezone.localdate()
        student = get_student(student_id)
        academic_year = resolve_academic_year(student)
        rate = get_tuition_rate(student, academic_year)
        paid = BillingService.paid_details(student, academic_year)
        scholarships = ScholarshipService.active_scholarships(student)

        bills = []
        total_unpaid = ZERO
        total_paid = ZERO
        for item in academic_year.academic_months():
            detail = paid.get((item.month, item.year))
            due = due_date_for(rate, item.year, item.month)
            scholarship = ScholarshipService.pick_for_month(scholarships, item.month, item.year)
            discount = scholarship.calculate_discount(rate.monthly_amount) if scholarship else ZERO
            late_fee = ZERO if detail else late_fee_for_month(rate, item.year, item.month, today)

            bills.append({
                'month': item.month,
                'month_name': item.month_name,
                'year': item.year,
                'amount': rate.monthly_amount,
                'due_date': due,
                'is_paid': detail is not None,
                'is_overdue': detail is None and today > due,
                'late_fee_amount': late_fee,
                'scholarship_discount': discount,
                'scholarship': scholarship.name if scholarship else None,
                'payment_info': {
                    'payment_id': detail.payment_id,
                    'receipt_number': detail.payment.receipt_number,
                    'payment_date': detail.payment.payment_date,
                    'amount': detail.amount,
                } if detail else None,
            })
            if detail:
                total_paid += detail.amount
            else:
                total_unpaid += rate.monthly_amount - discount + late_fee

        paid_count = sum(1 for bill in bills if bill['is_paid'])
        return {
            'student': BillingService._student_dict(student),
            'academic_year': {
                'id': academic_year.pk,
                'name': academic_year.name,
                'start_month': academic_year.start_month,
                'end_month': academic_year.end_month,
                'allow_partial_payment': academic_year.allow_partial_payment,
            },
            'tuition_rate': {
                'monthly_amount': rate.monthly_amount,
                'due_date': rate.due_date,
                'late_fee_enabled': rate.late_fee_enabled,
                'late_fee_type': rate.late_fee_type,
                'late_fee_amount': rate.late_fee_amount,
                'late_fee_start_day': rate.late_fee_start_day,
            },
            'bills': bills,
            'summary': {
                'total_months': len(bills),
                'paid_months': paid_count,
                'unpaid_months': len(bills) - paid_count,
                'total_unpaid': total_unpaid,
                'total_paid': total_paid,
            },
        }

    @staticmethod
    def students_with_bills(filters=None):
        """
        Bill status of every active student in their academic year.

        Args:
            filters (dict): optional ``class_id``, ``grade_level`` and
                ``bill_status`` ('unpaid' or 'paid').

        Students without a class or tuition rate are listed with ``bills``
        set to None and the reason in ``error``, unless a bill status is
        requested.
        """
        filters = filters or {}
        students = Student.objects.filter(is_active=True).select_related('student_class__academic_year')
        if filters.get('class_id'):
            students = students.filter(student_class_id=filters['class_id'])
        if filters.get('grade_level'):
            students = students.filter(student_class__grade_level=filters['grade_level'])

        paid = defaultdict(set)
        details = SppPaymentDetail.objects.filter(payment__student__in=students).values_list(
            'payment__student_id', 'payment__academic_year_id', 'month', 'year'
        )
        for student_id, academic_year_id, month, year in details:
            paid[(student_id, academic_year_id)].add((month, year))

        bill_status = filters.get('bill_status')
        rates = {}
        results = []
        for student in students:
            try:
                academic_year = resolve_academic_year(student)
                key = (academic_year.pk, student.grade_level)
                if key not in rates:
                    rates[key] = get_tuition_rate(student, academic_year)
            except NotFoundError as e:
                if not bill_status:
                    results.append({
                        'student': BillingService._student_dict(student), 'bills': None, 'error': e.message,
                    })
                continue

            rate = rates[key]
            months = academic_year.academic_months()
            unpaid = unpaid_months(months, paid[(student.pk, academic_year.pk)])
            if bill_status == 'unpaid' and not unpaid:
                continue
            if bill_status == 'paid' and unpaid:
                continue

            unpaid_list = [{'month': m.month, 'year': m.year, 'month_name': m.month_name} for m in unpaid]
            results.append({
                'student': BillingService._student_dict(student),
                'bills': {
                    'academic_year': {'id': academic_year.pk, 'name': academic_year.name},
                    'monthly_amount': rate.monthly_amount,
                    'paid_months': len(months) - len(unpaid),
                    'unpaid_months': unpaid_list,
                    'next_unpaid_month': unpaid_list[0] if unpaid_list else None,
                    'total_unpaid': rate.monthly_amount * len(unpaid),
                },
            })
        return results

    @staticmethod
    def quote(student_id, months, payment_date=None):
        """
        Expected amounts for paying ``months`` on ``payment_date``.

        Args:
            months: iterable of (month, year) pairs.
        """
        payment_date = payment_date or timezone.localdate()
        student = get_student(student_id)
        academic_year = resolve_academic_year(student)
        rate = get_tuition_rate(student, academic_year)
        scholarships = ScholarshipService.active_scholarships(student)

        lines = [PaymentLine(month, year, rate.monthly_amount) for month, year in months]
        if not lines:
            raise InvalidRequest({'months': ['At least one month is required.']})
        check_within_academic_year(lines, academic_year.academic_months())

        quoted = []
        for line in sorted(lines, key=lambda l: (l.year, l.month)):
            scholarship = ScholarshipService.pick_for_month(scholarships, line.month, line.year)
            quoted.append({
                'month': line.month,
                'year': line.year,
                'amount': line.amount,
                'discount': scholarship.calculate_discount(line.amount) if scholarship else ZERO,
                'late_fee': late_fee_for_month(rate, line.year, line.month, payment_date),
            })

        subtotal = sum((q['amount'] for q in quoted), ZERO)
        discount = sum((q['discount'] for q in quoted), ZERO)
        late_fee = sum((q['late_fee'] for q in quoted), ZERO)
        return {
            'payment_date': payment_date,
            'details': quoted,
            'subtotal': subtotal,
            'discount': discount,
            'late_fee': late_fee,
            'total_amount': subtotal - discount + late_fee,
        }

    @staticmethod
    def latest_payment(student):
        return SppPayment.objects.filter(student=student).order_by('-created_at', '-id').first()

    @staticmethod
    def payment_history(student_id, year=None):
        student = get_student(student_id)
        payments = SppPayment.objects.filter(student=student).prefetch_related('details')
        if year:
            payments = payments.filter(payment_date__year=year)
        return [BillingService.summarize(p) for p in payments.order_by('-payment_date', '-id')]

    @staticmethod
    def payment_detail(payment_id):
        payment = BillingService._get_payment(payment_id)
        data = BillingService.summarize(payment)
        data.update({
            'student': BillingService._student_dict(payment.student),
            'academic_year_name': payment.academic_year.name,
            'received_by': payment.created_by.full_name or payment.created_by.email,
            'created_at': payment.created_at,
        })
        return data

    @staticmethod
    def summarize(payment):
        return {
            'id': payment.pk,
            'receipt_number': payment.receipt_number,
            'student_id': payment.student_id,
            'academic_year_id': payment.academic_year_id,
            'payment_date': payment.payment_date,
            'subtotal': payment.subtotal,
            'discount': payment.discount,
            'late_fee': payment.late_fee,
            'total_amount': payment.total_amount,
            'payment_method': payment.payment_method,
            'notes': payment.notes,
            'months_paid': [
                {'month': d.month, 'year': d.year, 'month_name': d.month_name, 'amount': d.amount}
                for d in payment.details.all()
            ],
        }

    # ─── writes ───────────────────────────────────────────────────

    @staticmethod
    @transaction.atomic
    def record_payment(request, actor):
        """
        Validate and store a tuition payment.

        Args:
            request (PaymentRequest): parsed by ``finance.requests.parse_payment_request``
            actor: the user receiving the payment

        Returns:
            SppPayment with its detail rows.
        """
        if request.student_id is None:
            raise InvalidRequest({'student_id': ['This field is required.']})

        student = lock_student(request.student_id)
        academic_year = resolve_academic_year(student)
        rate = get_tuition_rate(student, academic_year)
        paid = BillingService.paid_details(student, academic_year)

        try:
            validate_payment(request, paid, academic_year.academic_months(), rate)
        except FinanceError as e:
            logger.warning(f"Payment rejected for student {student.admission_number}: {e.code} {e.message}")
            raise

        payment = SppPayment.objects.create(
            receipt_number=next_receipt_number(),
            student=student,
            academic_year=academic_year,
            payment_date=request.payment_date,
            subtotal=request.subtotal,
            discount=request.discount,
            late_fee=request.late_fee,
            total_amount=request.total_amount,
            payment_method=request.payment_method,
            notes=request.notes,
            created_by=actor,
        )
        BillingService._write_details(payment, request.details)

        logger.info(
            f"Recorded payment {payment.receipt_number} for {student.admission_number}: "
            f"{len(request.details)} month(s), total {payment.total_amount}"
        )
        return payment

    @staticmethod
    @transaction.atomic
    def update_payment(payment_id, request, actor):
        """
        Replace the months and amounts of the student's latest payment.
        The receipt number and academic year are kept.
        """
        student_id = BillingService._get_payment(payment_id).student_id
        if request.student_id is not None and request.student_id != student_id:
            raise InvalidRequest({'student_id': ['A payment cannot be moved to another student.']})

        student = lock_student(student_id)
        payment = BillingService._get_payment(payment_id)
        BillingService._ensure_latest(student, payment)

        rate = get_tuition_rate(student, payment.academic_year)
        paid = BillingService.paid_details(student, payment.academic_year, exclude_payment=payment)

        try:
            validate_payment(request, paid, payment.academic_year.academic_months(), rate)
        except FinanceError as e:
            logger.warning(f"Update of {payment.receipt_number} rejected: {e.code} {e.message}")
            raise

        payment.payment_date = request.payment_date
        payment.subtotal = request.subtotal
        payment.discount = request.discount
        payment.late_fee = request.late_fee
        payment.total_amount = request.total_amount
        payment.payment_method = request.payment_method
        payment.notes = request.notes
        payment.save()

        payment.details.all().delete()
        BillingService._write_details(payment, request.details)

        logger.info(f"Payment {payment.receipt_number} updated by {actor}")
        return payment

    @staticmethod
    @transaction.atomic
    def delete_payment(payment_id, today=None):
        today = today or timezone.localdate()
        student_id = BillingService._get_payment(payment_id).student_id

        student = lock_student(student_id)
        payment = BillingService._get_payment(payment_id)
        BillingService._ensure_latest(student, payment)

        window = settings.SPP_FINANCE['PAYMENT_DELETE_WINDOW_DAYS']
        age = (today - timezone.localdate(payment.created_at)).days
        if age > window:
            raise PaymentLocked(
                f"Payments older than {window} days cannot be deleted. Update the payment instead.",
                {'payment_age_days': age, 'max_allowed_days': window, 'allowed_action': 'update'},
            )

        receipt_number = payment.receipt_number
        payment.delete()
        logger.info(f"Deleted payment {receipt_number} for {student.admission_number}")
        return receipt_number

    # ─── helpers ──────────────────────────────────────────────────

    @staticmethod
    def _get_payment(payment_id):
        try:
            return SppPayment.objects.select_related(
                'academic_year', 'student__student_class', 'created_by'
            ).get(pk=payment_id)
        except SppPayment.DoesNotExist:
            raise NotFoundError('Payment not found.', {'payment_id': payment_id})

    @staticmethod
    def _ensure_latest(student, payment):
        latest = BillingService.latest_payment(student)
        if latest is None or latest.pk != payment.pk:
            raise NotLastEntry(
                'Only the latest payment can be changed.',
                {
                    'receipt_number': payment.receipt_number,
                    'latest_receipt_number': latest.receipt_number if latest else None,
                },
            )

    @staticmethod
    def _student_dict(student):
        return {
            'id': student.pk,
            'nis': student.admission_number,
            'full_name': student.full_name,
            'class': student.student_class.name if student.student_class_id else None,
            'grade_level': student.grade_level,
        }

    @staticmethod
    def _write_details(payment, lines):
        SppPaymentDetail.objects.bulk_create([
            SppPaymentDetail(payment=payment, month=line.month, year=line.year, amount=line.amount)
            for line in lines
        ])
