import logging

from django.db import transaction
from django.db.models import Count, OuterRef, Q, Subquery, Sum

from students.models import Student
from ..calculations import ZERO
from ..exceptions import FinanceError, NotFoundError
from ..ledger import SavingsLedger
from ..models import SavingsTransaction
from .base import get_student, lock_student

logger = logging.getLogger(__name__)


class SavingsService:
    """Student savings: deposits, withdrawals and corrections of the latest entry."""

    @staticmethod
    def current_balance(student_id):
        return SavingsLedger(get_student(student_id)).current_balance()

    @staticmethod
    def student_savings(student_id):
        """Balance, totals and full history for one student, oldest entry first."""
        student = get_student(student_id)
        ledger = SavingsLedger(student)
        entries = ledger.entries()
        totals = entries.aggregate(
            deposits=Sum('amount', filter=Q(transaction_type='deposit')),
            withdrawals=Sum('amount', filter=Q(transaction_type='withdrawal')),
            count=Count('id'),
        )
        return {
            'student': {
                'id': student.pk,
                'nis': student.admission_number,
                'full_name': student.full_name,
            },
            'balance': ledger.current_balance(),
            'total_deposits': totals['deposits'] or ZERO,
            'total_withdrawals': totals['withdrawals'] or ZERO,
            'transaction_count': totals['count'],
            'transactions': [SavingsService.summarize(t) for t in entries],
        }

    @staticmethod
    def all_balances():
        """Current balance and last transaction date of every active student."""
        latest = SavingsTransaction.objects.filter(student=OuterRef('pk')).order_by('-transaction_date', '-id')
        students = (
            Student.objects.filter(is_active=True)
            .select_related('student_class')
            .annotate(
                balance=Subquery(latest.values('balance_after')[:1]),
                last_transaction_date=Subquery(latest.values('transaction_date')[:1]),
            )
            .order_by('admission_number')
        )
        return [
            {
                'student': {
                    'id': student.pk,
                    'nis': student.admission_number,
                    'full_name': student.full_name,
                    'class': student.student_class.name if student.student_class_id else None,
                },
                'balance': student.balance if student.balance is not None else ZERO,
                'last_transaction_date': student.last_transaction_date,
            }
            for student in students
        ]

    @staticmethod
    def transaction_detail(transaction_id):
        entry = SavingsService._get_transaction(transaction_id)
        data = SavingsService.summarize(entry)
        data.update({
            'student': {
                'id': entry.student.pk,
                'nis': entry.student.admission_number,
                'full_name': entry.student.full_name,
            },
            'recorded_by': entry.created_by.full_name or entry.created_by.email,
            'created_at': entry.created_at,
        })
        return data

    @staticmethod
    def summarize(entry):
        return {
            'id': entry.pk,
            'transaction_number': entry.transaction_number,
            'transaction_type': entry.transaction_type,
            'amount': entry.amount,
            'balance_before': entry.balance_before,
            'balance_after': entry.balance_after,
            'transaction_date': entry.transaction_date,
            'notes': entry.notes,
        }

    @staticmethod
    @transaction.atomic
    def record_transaction(request, actor):
        """
        Append a deposit or withdrawal to the student's ledger.

        Args:
            request (SavingsRequest): parsed by ``finance.requests.parse_savings_request``
            actor: the user recording the transaction
        """
        student = lock_student(request.student_id)
        try:
            entry = SavingsLedger(student).append(
                request.transaction_type,
                request.amount,
                request.transaction_date,
                actor,
                notes=request.notes,
            )
        except FinanceError as e:
            logger.warning(f"Savings {request.transaction_type} rejected for {student.admission_number}: {e.message}")
            raise

        logger.info(
            f"Recorded {entry.transaction_type} {entry.transaction_number} for {student.admission_number}: "
            f"{entry.balance_before} -> {entry.balance_after}"
        )
        return entry

    @staticmethod
    @transaction.atomic
    def update_transaction(transaction_id, correction):
        """Correct the latest entry of a student's ledger with a SavingsCorrection."""
        entry = SavingsService._get_transaction(transaction_id)
        student = lock_student(entry.student_id)
        entry = SavingsService._get_transaction(transaction_id)

        try:
            entry = SavingsLedger(student).mutate_last(entry, **correction.changes())
        except FinanceError as e:
            logger.warning(f"Correction of {entry.transaction_number} rejected: {e.message}")
            raise

        logger.info(f"Corrected {entry.transaction_number}: {entry.balance_before} -> {entry.balance_after}")
        return entry

    @staticmethod
    @transaction.atomic
    def delete_transaction(transaction_id):
        entry = SavingsService._get_transaction(transaction_id)
        student = lock_student(entry.student_id)
        entry = SavingsService._get_transaction(transaction_id)

        number = entry.transaction_number
        SavingsLedger(student).delete_last(entry)
        logger.info(f"Deleted savings transaction {number} for {student.admission_number}")
        return number

    @staticmethod
    def _get_transaction(transaction_id):
        try:
            return SavingsTransaction.objects.select_related('student', 'created_by').get(pk=transaction_id)
        except SavingsTransaction.DoesNotExist:
            raise NotFoundError('Savings transaction not found.', {'transaction_id': transaction_id})
