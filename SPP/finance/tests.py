import json
from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal
from io import StringIO
from types import SimpleNamespace

from django.core.management import call_command
from django.test import Client, SimpleTestCase, TestCase
from django.urls import reverse
from django.utils import timezone

from accounts.models import CustomUser
from academics.models import AcademicYear, Class
from academics.utils import academic_months
from students.models import Student
from .billing import check_sequence, unpaid_months
from .calculations import late_fee_for_month, scholarship_discount
from .exceptions import (
    AmountMismatch, DuplicateTuitionRate, InsufficientFunds, InvalidRequest, LateFeeMismatch,
    MonthAlreadyPaid, MonthOutsideAcademicYear, NotFoundError, NotLastEntry, OverlappingScholarship,
    PaymentLocked, SequenceGap, SubtotalMismatch, TotalMismatch,
)
from .models import SavingsAccount, SavingsTransaction, Scholarship, SppPayment, SppPaymentDetail, TuitionRate
from .requests import (
    PaymentLine, PaymentRequest, SavingsCorrection, SavingsRequest,
    parse_bill_filters, parse_payment_request, parse_quote_request, parse_savings_request,
)
from .services import BillingService, SavingsService, ScholarshipService, TuitionRateService


def late_fee_rate(**overrides):
    values = dict(
        monthly_amount=Decimal('150000'), due_date=10, late_fee_enabled=True,
        late_fee_type='fixed', late_fee_amount=Decimal('10000'), late_fee_start_day=15,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class CalculationTests(SimpleTestCase):

    def test_no_late_fee_on_or_before_due_date(self):
        rate = late_fee_rate()
        self.assertEqual(late_fee_for_month(rate, 2025, 1, date(2025, 1, 10)), 0)
        self.assertEqual(late_fee_for_month(rate, 2025, 1, date(2024, 12, 20)), 0)

    def test_grace_window_charges_nothing(self):
        rate = late_fee_rate()
        self.assertEqual(late_fee_for_month(rate, 2025, 1, date(2025, 1, 11)), 0)
        self.assertEqual(late_fee_for_month(rate, 2025, 1, date(2025, 1, 14)), 0)

    def test_fixed_fee_from_start_day(self):
        rate = late_fee_rate()
        self.assertEqual(late_fee_for_month(rate, 2025, 1, date(2025, 1, 15)), Decimal('10000.00'))
        self.assertEqual(late_fee_for_month(rate, 2025, 1, date(2025, 3, 1)), Decimal('10000.00'))

    def test_percentage_fee(self):
        rate = late_fee_rate(late_fee_type='percentage', late_fee_amount=Decimal('5'))
        self.assertEqual(late_fee_for_month(rate, 2025, 1, date(2025, 1, 20)), Decimal('7500.00'))

    def test_disabled_policy(self):
        rate = late_fee_rate(late_fee_enabled=False)
        self.assertEqual(late_fee_for_month(rate, 2025, 1, date(2025, 6, 1)), 0)

    def test_days_clamped_to_short_months(self):
        rate = late_fee_rate(due_date=30, late_fee_start_day=31)
        # February 2025 has 28 days: due and start both fall on the 28th.
        self.assertEqual(late_fee_for_month(rate, 2025, 2, date(2025, 2, 28)), 0)
        self.assertEqual(late_fee_for_month(rate, 2025, 2, date(2025, 3, 1)), Decimal('10000.00'))

    def test_scholarship_discount(self):
        gross = Decimal('150000')
        self.assertEqual(scholarship_discount('full', Decimal('100'), None, gross), gross)
        self.assertEqual(scholarship_discount('partial', None, Decimal('50000'), gross), Decimal('50000'))
        self.assertEqual(scholarship_discount('partial', None, Decimal('200000'), gross), gross)
        self.assertEqual(scholarship_discount('partial', Decimal('25'), None, gross), Decimal('37500.00'))
        self.assertEqual(scholarship_discount('partial', Decimal('33.33'), None, Decimal('100')), Decimal('33.33'))


class BillingCheckTests(SimpleTestCase):

    def setUp(self):
        self.months = academic_months(1, 12, 2025)

    def lines(self, *months):
        return [PaymentLine(m, 2025, Decimal('150000')) for m in months]

    def test_unpaid_months_excludes_paid_and_keeps_order(self):
        result = unpaid_months(self.months, {(1, 2025), (3, 2025)})
        self.assertEqual([m.month for m in result], [2] + list(range(4, 13)))

    def test_unpaid_months_of_year_spanning_calendar(self):
        months = academic_months(7, 6, 2024)
        result = unpaid_months(months, {(7, 2024)})
        self.assertEqual((result[0].month, result[0].year), (8, 2024))
        self.assertEqual((result[-1].month, result[-1].year), (6, 2025))

    def test_gap_after_paid_months(self):
        with self.assertRaises(SequenceGap) as ctx:
            check_sequence(self.lines(4), {(1, 2025), (2, 2025)}, self.months)
        self.assertEqual(ctx.exception.payload['missing_month'], {'month': 3, 'year': 2025})

    def test_gap_inside_request(self):
        with self.assertRaises(SequenceGap) as ctx:
            check_sequence(self.lines(1, 3), set(), self.months)
        self.assertEqual(ctx.exception.payload['missing_month']['month'], 2)

    def test_first_month_required(self):
        with self.assertRaises(SequenceGap):
            check_sequence(self.lines(2), set(), self.months)

    def test_contiguous_sequence_passes(self):
        check_sequence(self.lines(3, 4), {(1, 2025), (2, 2025)}, self.months)

    def test_sequence_follows_academic_order_across_years(self):
        months = academic_months(7, 6, 2024)
        paid = {(m, 2024) for m in range(7, 13)}
        check_sequence([PaymentLine(1, 2025, Decimal('1'))], paid, months)
        with self.assertRaises(SequenceGap):
            check_sequence([PaymentLine(2, 2025, Decimal('1'))], paid, months)


class FinanceTestCase(TestCase):
    """Academic year, class, student and tuition rate shared by the service tests."""

    start_month = 1
    end_month = 12
    year = 2025

    def setUp(self):
        self.user = CustomUser.objects.create_user(
            email='accountant@test.com', password='password', full_name='Accountant', user_type='accountant'
        )
        end_year = self.year if self.start_month <= self.end_month else self.year + 1
        self.academic_year = AcademicYear.objects.create(
            name=f'{self.year}/{end_year}',
            start_date=date(self.year, self.start_month, 1),
            end_date=date(end_year, self.end_month, 28),
            start_month=self.start_month, end_month=self.end_month, is_active=True,
        )
        self.cls = Class.objects.create(name='7A', grade_level=7, academic_year=self.academic_year)
        self.student = Student.objects.create(
            admission_number='2025001', first_name='Budi', last_name='Santoso', student_class=self.cls
        )
        self.rate = TuitionRate.objects.create(
            academic_year=self.academic_year, grade_level=7, monthly_amount=Decimal('150000'), due_date=10
        )

    def payment(self, months, total=None, year=None, payment_date=None, **overrides):
        year = year or self.year
        details = [PaymentLine(m, year, Decimal('150000')) for m in months]
        subtotal = Decimal('150000') * len(details)
        values = dict(
            student_id=self.student.pk,
            payment_date=payment_date or date(year, 1, 5),
            details=details,
            subtotal=subtotal,
            total_amount=subtotal if total is None else Decimal(total),
            payment_method='cash',
        )
        values.update(overrides)
        return PaymentRequest(**values)


class PaymentServiceTests(FinanceTestCase):

    def test_valid_payment_is_recorded(self):
        payment = BillingService.record_payment(self.payment([1, 2, 3]), self.user)

        self.assertEqual(payment.subtotal, Decimal('450000'))
        self.assertEqual(payment.total_amount, Decimal('450000'))
        self.assertEqual(payment.academic_year, self.academic_year)
        self.assertEqual(
            sorted(payment.details.values_list('month', flat=True)), [1, 2, 3]
        )
        self.assertEqual(payment.months_label, 'January 2025, February 2025, March 2025')

    def test_total_mismatch_writes_nothing(self):
        with self.assertRaises(TotalMismatch):
            BillingService.record_payment(self.payment([1, 2, 3], total='460000'), self.user)
        self.assertFalse(SppPayment.objects.exists())
        self.assertFalse(SppPaymentDetail.objects.exists())

    def test_subtotal_mismatch(self):
        request = self.payment([1], subtotal=Decimal('100000'), total_amount=Decimal('100000'))
        with self.assertRaises(SubtotalMismatch):
            BillingService.record_payment(request, self.user)

    def test_amount_must_match_rate(self):
        request = replace(
            self.payment([1]),
            details=[PaymentLine(1, 2025, Decimal('100000'))],
            subtotal=Decimal('100000'),
            total_amount=Decimal('100000'),
        )
        with self.assertRaises(AmountMismatch):
            BillingService.record_payment(request, self.user)

    def test_discount_reduces_total(self):
        request = self.payment([1], discount=Decimal('50000'), total_amount=Decimal('100000'))
        payment = BillingService.record_payment(request, self.user)
        self.assertEqual(payment.total_amount, Decimal('100000'))

    def test_already_paid_month_rejected(self):
        BillingService.record_payment(self.payment([1, 2]), self.user)
        with self.assertRaises(MonthAlreadyPaid) as ctx:
            BillingService.record_payment(self.payment([2, 3]), self.user)
        self.assertEqual(ctx.exception.payload['months'], [{'month': 2, 'year': 2025}])

    def test_duplicate_month_in_request_rejected(self):
        with self.assertRaises(InvalidRequest):
            BillingService.record_payment(self.payment([1, 1]), self.user)

    def test_skipping_a_month_rejected(self):
        BillingService.record_payment(self.payment([1, 2]), self.user)
        with self.assertRaises(SequenceGap) as ctx:
            BillingService.record_payment(self.payment([4]), self.user)
        self.assertEqual(ctx.exception.payload['missing_month'], {'month': 3, 'year': 2025})
        self.assertEqual(SppPayment.objects.count(), 1)

    def test_month_outside_academic_year_rejected(self):
        with self.assertRaises(MonthOutsideAcademicYear):
            BillingService.record_payment(self.payment([1], year=2026), self.user)

    def test_receipt_numbers_are_sequential(self):
        first = BillingService.record_payment(self.payment([1]), self.user)
        second = BillingService.record_payment(self.payment([2]), self.user)
        year = timezone.localdate().year
        self.assertEqual(first.receipt_number, f'KWT/SPP/{year}/00001')
        self.assertEqual(second.receipt_number, f'KWT/SPP/{year}/00002')

    def test_unpaid_months_after_payment(self):
        before = BillingService.compute_unpaid_months(self.student.pk)
        self.assertEqual(len(before), 12)
        self.assertEqual(before, BillingService.compute_unpaid_months(self.student.pk))

        BillingService.record_payment(self.payment([1, 2]), self.user)
        after = BillingService.compute_unpaid_months(self.student.pk)
        self.assertEqual(after[0], {'month': 3, 'year': 2025, 'month_name': 'March'})
        self.assertEqual(len(after), 10)

    def test_late_fee_must_match_policy(self):
        self.rate.late_fee_enabled = True
        self.rate.late_fee_type = 'fixed'
        self.rate.late_fee_amount = Decimal('10000')
        self.rate.late_fee_start_day = 15
        self.rate.save()

        paid_late = date(2025, 1, 20)
        with self.assertRaises(LateFeeMismatch):
            BillingService.record_payment(
                self.payment([1], payment_date=paid_late, late_fee=Decimal('5000'), total_amount=Decimal('155000')),
                self.user,
            )

        payment = BillingService.record_payment(
            self.payment([1], payment_date=paid_late, late_fee=Decimal('10000'), total_amount=Decimal('160000')),
            self.user,
        )
        self.assertEqual(payment.late_fee, Decimal('10000'))

    def test_zero_late_fee_is_a_waiver(self):
        self.rate.late_fee_enabled = True
        self.rate.late_fee_type = 'fixed'
        self.rate.late_fee_amount = Decimal('10000')
        self.rate.late_fee_start_day = 15
        self.rate.save()
        payment = BillingService.record_payment(self.payment([1], payment_date=date(2025, 1, 20)), self.user)
        self.assertEqual(payment.late_fee, Decimal('0'))

    def test_late_fee_rejected_when_policy_disabled(self):
        with self.assertRaises(LateFeeMismatch):
            BillingService.record_payment(
                self.payment([1], late_fee=Decimal('10000'), total_amount=Decimal('160000')), self.user
            )

    def test_only_latest_payment_can_be_updated(self):
        first = BillingService.record_payment(self.payment([1]), self.user)
        BillingService.record_payment(self.payment([2]), self.user)
        with self.assertRaises(NotLastEntry):
            BillingService.update_payment(first.pk, self.payment([1]), self.user)

    def test_update_replaces_months(self):
        BillingService.record_payment(self.payment([1]), self.user)
        latest = BillingService.record_payment(self.payment([2]), self.user)

        updated = BillingService.update_payment(latest.pk, self.payment([2, 3]), self.user)

        self.assertEqual(updated.receipt_number, latest.receipt_number)
        self.assertEqual(sorted(updated.details.values_list('month', flat=True)), [2, 3])
        self.assertEqual(updated.total_amount, Decimal('300000'))

    def test_update_still_checks_sequence(self):
        BillingService.record_payment(self.payment([1]), self.user)
        latest = BillingService.record_payment(self.payment([2]), self.user)
        with self.assertRaises(SequenceGap):
            BillingService.update_payment(latest.pk, self.payment([3]), self.user)
        self.assertEqual(list(latest.details.values_list('month', flat=True)), [2])

    def test_only_latest_payment_can_be_deleted(self):
        first = BillingService.record_payment(self.payment([1]), self.user)
        latest = BillingService.record_payment(self.payment([2]), self.user)

        with self.assertRaises(NotLastEntry):
            BillingService.delete_payment(first.pk)

        BillingService.delete_payment(latest.pk)
        self.assertFalse(SppPayment.objects.filter(pk=latest.pk).exists())
        self.assertEqual(BillingService.compute_unpaid_months(self.student.pk)[0]['month'], 2)

    def test_old_payment_cannot_be_deleted(self):
        payment = BillingService.record_payment(self.payment([1]), self.user)
        with self.assertRaises(PaymentLocked):
            BillingService.delete_payment(payment.pk, today=timezone.localdate() + timedelta(days=31))
        self.assertTrue(SppPayment.objects.filter(pk=payment.pk).exists())

    def test_payment_history(self):
        BillingService.record_payment(self.payment([1, 2]), self.user)
        history = BillingService.payment_history(self.student.pk)
        self.assertEqual(len(history), 1)
        self.assertEqual([m['month'] for m in history[0]['months_paid']], [1, 2])
        self.assertEqual(BillingService.payment_history(self.student.pk, year=2020), [])


class AcademicYearSpanningPaymentTests(FinanceTestCase):
    start_month = 7
    end_month = 6
    year = 2024

    def test_months_continue_into_next_calendar_year(self):
        BillingService.record_payment(self.payment(range(7, 13), year=2024), self.user)
        payment = BillingService.record_payment(self.payment([1], year=2025, payment_date=date(2025, 1, 5)), self.user)
        self.assertEqual(payment.details.get().year, 2025)

        with self.assertRaises(SequenceGap):
            BillingService.record_payment(self.payment([3], year=2025), self.user)


class BillsAndScholarshipTests(FinanceTestCase):

    def setUp(self):
        self.year = timezone.localdate().year
        super().setUp()

    def test_bills_statement(self):
        BillingService.record_payment(self.payment([1]), self.user)
        bills = BillingService.student_bills(self.student.pk, today=date(self.year, 3, 20))

        self.assertEqual(bills['summary']['total_months'], 12)
        self.assertEqual(bills['summary']['paid_months'], 1)
        self.assertEqual(bills['summary']['total_paid'], Decimal('150000'))
        self.assertTrue(bills['bills'][0]['is_paid'])
        self.assertTrue(bills['bills'][1]['is_overdue'])
        self.assertFalse(bills['bills'][11]['is_overdue'])
        self.assertEqual(bills['bills'][0]['payment_info']['receipt_number'][:8], 'KWT/SPP/')

    def test_full_scholarship_discount_in_quote(self):
        ScholarshipService.create_scholarship({
            'student_id': self.student.pk,
            'name': 'Beasiswa Prestasi',
            'scholarship_type': 'full',
            'start_date': date(self.year, 1, 1),
            'end_date': date(self.year, 12, 31),
        }, actor=self.user)

        quote = BillingService.quote(self.student.pk, [(1, self.year), (2, self.year)], date(self.year, 1, 5))
        self.assertEqual(quote['subtotal'], Decimal('300000'))
        self.assertEqual(quote['discount'], Decimal('300000'))
        self.assertEqual(quote['total_amount'], Decimal('0'))

    def test_quote_rejects_month_outside_year(self):
        with self.assertRaises(MonthOutsideAcademicYear):
            BillingService.quote(self.student.pk, [(1, self.year + 1)])

    def test_quote_rejects_invalid_month(self):
        with self.assertRaises(InvalidRequest) as ctx:
            BillingService.quote(self.student.pk, [(13, self.year)])
        self.assertIn('months', ctx.exception.errors)

    def test_partial_scholarship_in_bills(self):
        ScholarshipService.create_scholarship({
            'student_id': self.student.pk,
            'name': 'Beasiswa Yatim',
            'scholarship_type': 'partial',
            'discount_percentage': '50',
            'start_date': date(self.year, 1, 1),
            'end_date': date(self.year, 12, 31),
        })
        bills = BillingService.student_bills(self.student.pk, today=date(self.year, 1, 1))
        self.assertEqual(bills['bills'][0]['scholarship_discount'], Decimal('75000.00'))


class ScholarshipServiceTests(FinanceTestCase):

    def setUp(self):
        self.year = timezone.localdate().year
        super().setUp()
        self.today = timezone.localdate()

    def data(self, **overrides):
        values = {
            'student_id': self.student.pk,
            'name': 'Beasiswa Prestasi',
            'scholarship_type': 'partial',
            'discount_amount': '50000',
            'start_date': self.today - timedelta(days=10),
            'end_date': self.today + timedelta(days=10),
        }
        values.update(overrides)
        return values

    def test_status_derived_from_dates(self):
        active = ScholarshipService.create_scholarship(self.data())
        self.assertEqual(active.status, 'active')

        future = Scholarship(
            student=self.student, name='Future', start_date=self.today + timedelta(days=5),
            end_date=self.today + timedelta(days=50),
        )
        self.assertEqual(future.derive_status(self.today), 'inactive')
        self.assertEqual(future.derive_status(self.today + timedelta(days=51)), 'expired')

    def test_same_name_overlap_rejected(self):
        ScholarshipService.create_scholarship(self.data(
            start_date=self.today + timedelta(days=30), end_date=self.today + timedelta(days=60)
        ))
        with self.assertRaises(OverlappingScholarship):
            ScholarshipService.create_scholarship(self.data(
                start_date=self.today + timedelta(days=40), end_date=self.today + timedelta(days=90)
            ))

    def test_overlap_with_active_scholarship_rejected(self):
        ScholarshipService.create_scholarship(self.data())
        with self.assertRaises(OverlappingScholarship):
            ScholarshipService.create_scholarship(self.data(name='Beasiswa Yatim'))

    def test_partial_needs_exactly_one_discount(self):
        with self.assertRaises(InvalidRequest):
            ScholarshipService.create_scholarship(self.data(discount_percentage='10'))
        with self.assertRaises(InvalidRequest):
            ScholarshipService.create_scholarship(self.data(discount_amount=None))

    def test_dates_must_fit_academic_year(self):
        with self.assertRaises(InvalidRequest):
            ScholarshipService.create_scholarship(self.data(
                academic_year=self.academic_year.pk,
                start_date=date(self.year - 1, 12, 1),
                end_date=date(self.year, 2, 1),
            ))

    def test_update_switches_discount_kind(self):
        scholarship = ScholarshipService.create_scholarship(self.data())
        updated = ScholarshipService.update_scholarship(scholarship.pk, {'discount_percentage': '25'})
        self.assertEqual(updated.discount_percentage, Decimal('25'))
        self.assertIsNone(updated.discount_amount)

    def test_refresh_statuses_command(self):
        scholarship = ScholarshipService.create_scholarship(self.data())
        Scholarship.objects.filter(pk=scholarship.pk).update(end_date=self.today - timedelta(days=1))

        out = StringIO()
        call_command('refresh_scholarship_statuses', stdout=out)

        scholarship.refresh_from_db()
        self.assertEqual(scholarship.status, 'expired')
        self.assertIn('Updated 1', out.getvalue())


class TuitionRateServiceTests(FinanceTestCase):

    def test_duplicate_grade_rejected(self):
        with self.assertRaises(DuplicateTuitionRate):
            TuitionRateService.create_rate({
                'academic_year': self.academic_year.pk, 'grade_level': 7,
                'monthly_amount': '175000', 'due_date': 10,
            })

    def test_late_fee_start_day_after_due_day(self):
        with self.assertRaises(InvalidRequest) as ctx:
            TuitionRateService.create_rate({
                'academic_year': self.academic_year.pk, 'grade_level': 8,
                'monthly_amount': '175000', 'due_date': 10,
                'late_fee_enabled': True, 'late_fee_type': 'fixed',
                'late_fee_amount': '10000', 'late_fee_start_day': 10,
            })
        self.assertIn('late_fee_start_day', ctx.exception.errors)

    def test_create_rate(self):
        rate = TuitionRateService.create_rate({
            'academic_year': self.academic_year.pk, 'grade_level': 8,
            'monthly_amount': '175000', 'due_date': 10,
        })
        self.assertEqual(rate.monthly_amount, Decimal('175000'))

    def test_delete_rate(self):
        rate = TuitionRate.objects.create(
            academic_year=self.academic_year, grade_level=8, monthly_amount=Decimal('175000'), due_date=10
        )
        TuitionRateService.delete_rate(rate.pk)
        self.assertFalse(TuitionRate.objects.filter(pk=rate.pk).exists())
        with self.assertRaises(NotFoundError):
            TuitionRateService.delete_rate(rate.pk)


class SavingsServiceTests(FinanceTestCase):

    def savings(self, transaction_type, amount, day=1):
        return SavingsRequest(
            student_id=self.student.pk, transaction_type=transaction_type,
            amount=Decimal(amount), transaction_date=date(2025, 1, day),
        )

    def test_withdrawal_without_balance_rejected(self):
        with self.assertRaises(InsufficientFunds):
            SavingsService.record_transaction(self.savings('withdrawal', '50000'), self.user)
        self.assertEqual(SavingsService.current_balance(self.student.pk), Decimal('0'))
        self.assertFalse(SavingsTransaction.objects.exists())

    def test_only_last_entry_can_be_corrected(self):
        deposit = SavingsService.record_transaction(self.savings('deposit', '100000'), self.user)
        withdrawal = SavingsService.record_transaction(self.savings('withdrawal', '30000', day=2), self.user)

        self.assertEqual((deposit.balance_before, deposit.balance_after), (Decimal('0'), Decimal('100000')))
        self.assertEqual((withdrawal.balance_before, withdrawal.balance_after), (Decimal('100000'), Decimal('70000')))

        with self.assertRaises(NotLastEntry):
            SavingsService.update_transaction(deposit.pk, SavingsCorrection(amount=Decimal('120000')))
        with self.assertRaises(NotLastEntry):
            SavingsService.delete_transaction(deposit.pk)

    def test_balances_chain(self):
        for kind, amount, day in [('deposit', '100000', 1), ('deposit', '25000', 2), ('withdrawal', '40000', 3)]:
            SavingsService.record_transaction(self.savings(kind, amount, day), self.user)

        entries = list(SavingsTransaction.objects.filter(student=self.student).order_by('transaction_date', 'id'))
        previous = Decimal('0')
        for entry in entries:
            self.assertEqual(entry.balance_before, previous)
            self.assertEqual(entry.balance_after, entry.balance_before + entry.signed_amount)
            previous = entry.balance_after
        self.assertEqual(SavingsService.current_balance(self.student.pk), Decimal('85000'))
        self.assertEqual(SavingsAccount.objects.get(student=self.student).last_transaction, entries[-1])

    def test_entry_before_tail_rejected(self):
        SavingsService.record_transaction(self.savings('deposit', '100000', day=5), self.user)
        with self.assertRaises(InvalidRequest):
            SavingsService.record_transaction(self.savings('deposit', '100000', day=4), self.user)

    def test_correct_tail_recomputes_balance(self):
        SavingsService.record_transaction(self.savings('deposit', '100000'), self.user)
        withdrawal = SavingsService.record_transaction(self.savings('withdrawal', '30000', day=2), self.user)

        corrected = SavingsService.update_transaction(withdrawal.pk, SavingsCorrection(amount=Decimal('45000')))
        self.assertEqual(corrected.balance_before, Decimal('100000'))
        self.assertEqual(corrected.balance_after, Decimal('55000'))

        with self.assertRaises(InsufficientFunds):
            SavingsService.update_transaction(withdrawal.pk, SavingsCorrection(amount=Decimal('150000')))
        self.assertEqual(SavingsService.current_balance(self.student.pk), Decimal('55000'))

    def test_delete_tail_moves_pointer_back(self):
        deposit = SavingsService.record_transaction(self.savings('deposit', '100000'), self.user)
        withdrawal = SavingsService.record_transaction(self.savings('withdrawal', '30000', day=2), self.user)

        SavingsService.delete_transaction(withdrawal.pk)

        account = SavingsAccount.objects.get(student=self.student)
        self.assertEqual(account.last_transaction, deposit)
        self.assertEqual(account.balance, Decimal('100000'))
        SavingsService.update_transaction(deposit.pk, SavingsCorrection(notes='corrected'))

    def test_transaction_numbers(self):
        entry = SavingsService.record_transaction(self.savings('deposit', '1000'), self.user)
        self.assertEqual(entry.transaction_number, f'TAB/{timezone.localdate().year}/00001')

    def test_all_balances(self):
        SavingsService.record_transaction(self.savings('deposit', '100000', day=1), self.user)
        SavingsService.record_transaction(self.savings('withdrawal', '30000', day=2), self.user)
        Student.objects.create(admission_number='2025002', first_name='Ani', student_class=self.cls)
        Student.objects.create(admission_number='2025003', first_name='Dodi', is_active=False)

        balances = {row['student']['nis']: row for row in SavingsService.all_balances()}
        self.assertEqual(set(balances), {'2025001', '2025002'})
        self.assertEqual(balances['2025001']['balance'], Decimal('70000'))
        self.assertEqual(balances['2025001']['last_transaction_date'], date(2025, 1, 2))
        self.assertEqual(balances['2025002']['balance'], Decimal('0'))
        self.assertIsNone(balances['2025002']['last_transaction_date'])

    def test_transaction_detail(self):
        entry = SavingsService.record_transaction(self.savings('deposit', '50000'), self.user)
        detail = SavingsService.transaction_detail(entry.pk)
        self.assertEqual(detail['transaction_number'], entry.transaction_number)
        self.assertEqual(detail['student']['nis'], '2025001')
        self.assertEqual(detail['recorded_by'], 'Accountant')
        with self.assertRaises(NotFoundError):
            SavingsService.transaction_detail(entry.pk + 100)


class BillOverviewTests(FinanceTestCase):

    def setUp(self):
        super().setUp()
        Student.objects.create(admission_number='2025002', first_name='Ani', student_class=self.cls)
        Student.objects.create(admission_number='2025003', first_name='Citra')
        Student.objects.create(admission_number='2025004', first_name='Dodi', student_class=self.cls, is_active=False)

    def overview(self, filters=None):
        return {row['student']['nis']: row for row in BillingService.students_with_bills(filters)}

    def test_active_students_with_bill_status(self):
        BillingService.record_payment(self.payment([1, 2]), self.user)
        overview = self.overview()

        self.assertEqual(set(overview), {'2025001', '2025002', '2025003'})
        bills = overview['2025001']['bills']
        self.assertEqual(bills['paid_months'], 2)
        self.assertEqual(len(bills['unpaid_months']), 10)
        self.assertEqual(bills['next_unpaid_month']['month'], 3)
        self.assertEqual(bills['total_unpaid'], Decimal('1500000'))
        self.assertEqual(overview['2025002']['bills']['paid_months'], 0)

    def test_student_without_class_reports_error(self):
        row = self.overview()['2025003']
        self.assertIsNone(row['bills'])
        self.assertEqual(row['error'], 'Student is not assigned to a class.')

    def test_bill_status_filter(self):
        BillingService.record_payment(self.payment(range(1, 13)), self.user)
        self.assertEqual(set(self.overview({'bill_status': 'paid'})), {'2025001'})
        self.assertEqual(set(self.overview({'bill_status': 'unpaid'})), {'2025002'})

    def test_class_and_grade_filters(self):
        other = Class.objects.create(name='8A', grade_level=8, academic_year=self.academic_year)
        Student.objects.create(admission_number='2025005', first_name='Eka', student_class=other)

        self.assertEqual(set(self.overview({'class_id': self.cls.pk})), {'2025001', '2025002'})
        by_grade = self.overview({'grade_level': 8})
        self.assertEqual(set(by_grade), {'2025005'})
        self.assertEqual(by_grade['2025005']['error'], 'No tuition rate is configured for this grade level.')

    def test_payment_detail(self):
        payment = BillingService.record_payment(self.payment([1]), self.user)
        detail = BillingService.payment_detail(payment.pk)
        self.assertEqual(detail['receipt_number'], payment.receipt_number)
        self.assertEqual(detail['student']['nis'], '2025001')
        self.assertEqual(detail['received_by'], 'Accountant')
        self.assertEqual(detail['months_paid'][0]['month'], 1)
        with self.assertRaises(NotFoundError):
            BillingService.payment_detail(payment.pk + 100)


class RequestParsingTests(SimpleTestCase):

    def test_payment_request_parsed(self):
        request = parse_payment_request({
            'student_id': 1,
            'payment_date': '2025-01-05',
            'details': [{'month': 1, 'year': 2025, 'amount': '150000'}],
            'subtotal': '150000',
            'total_amount': '150000',
            'payment_method': 'cash',
        })
        self.assertEqual(request.details, [PaymentLine(1, 2025, Decimal('150000'))])
        self.assertEqual(request.discount, Decimal('0'))

    def test_detail_errors_are_indexed(self):
        with self.assertRaises(InvalidRequest) as ctx:
            parse_payment_request({
                'student_id': 1,
                'payment_date': '2025-01-05',
                'details': [{'month': 1, 'year': 2025, 'amount': '1'}, {'month': 13, 'year': 2025, 'amount': '1'}],
                'subtotal': '2',
                'total_amount': '2',
                'payment_method': 'cash',
                'coupon': 'X',
            })
        errors = ctx.exception.errors
        self.assertIn('details.1.month', errors)
        self.assertIn('coupon', errors)
        self.assertNotIn('details.0.month', errors)

    def test_empty_details_rejected(self):
        with self.assertRaises(InvalidRequest) as ctx:
            parse_payment_request({
                'student_id': 1, 'payment_date': '2025-01-05', 'details': [],
                'subtotal': '0', 'total_amount': '0', 'payment_method': 'cash',
            })
        self.assertIn('details', ctx.exception.errors)

    def test_savings_amount_must_be_positive(self):
        with self.assertRaises(InvalidRequest) as ctx:
            parse_savings_request({
                'student_id': 1, 'transaction_type': 'deposit', 'amount': '0', 'transaction_date': '2025-01-01',
            })
        self.assertIn('amount', ctx.exception.errors)

    def test_quote_request_parsed(self):
        months, payment_date = parse_quote_request({
            'months': [{'month': 1, 'year': 2025}, {'month': 2, 'year': 2025}],
            'payment_date': '2025-01-05',
        })
        self.assertEqual(months, [(1, 2025), (2, 2025)])
        self.assertEqual(payment_date, date(2025, 1, 5))
        self.assertIsNone(parse_quote_request({'months': [{'month': 1, 'year': 2025}]})[1])

    def test_quote_month_out_of_range(self):
        with self.assertRaises(InvalidRequest) as ctx:
            parse_quote_request({'months': [{'month': 13, 'year': 2025}]})
        self.assertIn('months.0.month', ctx.exception.errors)

    def test_bill_filters(self):
        self.assertEqual(parse_bill_filters({'class_id': '3', 'bill_status': ''}), {'class_id': 3})
        with self.assertRaises(InvalidRequest) as ctx:
            parse_bill_filters({'bill_status': 'overdue'})
        self.assertIn('bill_status', ctx.exception.errors)


class FinanceViewTests(FinanceTestCase):

    def setUp(self):
        super().setUp()
        self.client = Client()
        self.client.force_login(self.user)

    def post_json(self, name, data, **kwargs):
        return self.client.post(
            reverse(name, kwargs=kwargs), data=json.dumps(data, default=str), content_type='application/json'
        )

    def payment_body(self, months, total):
        return {
            'student_id': self.student.pk,
            'payment_date': '2025-01-05',
            'details': [{'month': m, 'year': 2025, 'amount': '150000'} for m in months],
            'subtotal': str(150000 * len(months)),
            'total_amount': total,
            'payment_method': 'transfer',
        }

    def test_login_required(self):
        response = Client().get(reverse('finance:unpaid_months', kwargs={'student_id': self.student.pk}))
        self.assertEqual(response.status_code, 302)

    def test_teacher_forbidden(self):
        teacher = CustomUser.objects.create_user(email='teacher@test.com', password='password', user_type='teacher')
        client = Client()
        client.force_login(teacher)
        response = client.get(reverse('finance:unpaid_months', kwargs={'student_id': self.student.pk}))
        self.assertEqual(response.status_code, 403)

    def test_record_payment_endpoint(self):
        response = self.post_json('finance:record_payment', self.payment_body([1, 2, 3], '450000'))
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body['status'], 'success')
        self.assertEqual(Decimal(body['data']['total_amount']), Decimal('450000'))

        response = self.client.get(reverse('finance:unpaid_months', kwargs={'student_id': self.student.pk}))
        self.assertEqual(response.json()['data']['unpaid_months'][0]['month'], 4)

    def test_total_mismatch_response(self):
        response = self.post_json('finance:record_payment', self.payment_body([1, 2, 3], '460000'))
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()['error'], 'TotalMismatch')
        self.assertFalse(SppPayment.objects.exists())

    def test_sequence_gap_response(self):
        response = self.post_json('finance:record_payment', self.payment_body([2], '150000'))
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error'], 'SequenceGap')

    def test_invalid_json_response(self):
        response = self.client.post(reverse('finance:record_payment'), data='{oops', content_type='application/json')
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()['error'], 'InvalidRequest')

    def test_unknown_student(self):
        response = self.client.get(reverse('finance:unpaid_months', kwargs={'student_id': 9999}))
        self.assertEqual(response.status_code, 404)

    def test_savings_endpoints(self):
        response = self.post_json('finance:record_savings', {
            'student_id': self.student.pk, 'transaction_type': 'deposit',
            'amount': '100000', 'transaction_date': '2025-01-01',
        })
        self.assertEqual(response.status_code, 201)
        deposit_id = response.json()['data']['id']

        response = self.post_json('finance:record_savings', {
            'student_id': self.student.pk, 'transaction_type': 'withdrawal',
            'amount': '30000', 'transaction_date': '2025-01-02',
        })
        self.assertEqual(Decimal(response.json()['data']['balance_after']), Decimal('70000'))

        response = self.post_json('finance:update_savings', {'amount': '120000'}, transaction_id=deposit_id)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error'], 'NotLastEntry')

        response = self.client.get(reverse('finance:student_savings', kwargs={'student_id': self.student.pk}))
        self.assertEqual(Decimal(response.json()['data']['balance']), Decimal('70000'))

    def test_create_scholarship_endpoint(self):
        today = timezone.localdate()
        response = self.post_json('finance:create_scholarship', {
            'student_id': self.student.pk,
            'name': 'Beasiswa Prestasi',
            'scholarship_type': 'full',
            'start_date': today.isoformat(),
            'end_date': (today + timedelta(days=30)).isoformat(),
        })
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['data']['status'], 'active')

    def test_quote_endpoint_rejects_invalid_month(self):
        response = self.post_json(
            'finance:payment_quote', {'months': [{'month': 13, 'year': 2025}]}, student_id=self.student.pk
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()['error'], 'InvalidRequest')
        self.assertIn('months.0.month', response.json()['data']['errors'])

    def test_quote_endpoint(self):
        response = self.post_json(
            'finance:payment_quote',
            {'months': [{'month': 1, 'year': 2025}], 'payment_date': '2025-01-05'},
            student_id=self.student.pk,
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(response.json()['data']['total_amount']), Decimal('150000'))

    def test_bill_overview_endpoint(self):
        self.post_json('finance:record_payment', self.payment_body([1], '150000'))
        response = self.client.get(reverse('finance:students_with_bills'), {'bill_status': 'unpaid'})
        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertEqual(data['count'], 1)
        self.assertEqual(data['students'][0]['bills']['paid_months'], 1)

        response = self.client.get(reverse('finance:students_with_bills'), {'bill_status': 'overdue'})
        self.assertEqual(response.status_code, 422)

    def test_payment_detail_endpoint(self):
        payment_id = self.post_json('finance:record_payment', self.payment_body([1], '150000')).json()['data']['id']
        response = self.client.get(reverse('finance:payment_detail', kwargs={'payment_id': payment_id}))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['student']['nis'], '2025001')

        response = self.client.get(reverse('finance:payment_detail', kwargs={'payment_id': payment_id + 100}))
        self.assertEqual(response.status_code, 404)

    def test_savings_detail_and_balances_endpoints(self):
        transaction_id = self.post_json('finance:record_savings', {
            'student_id': self.student.pk, 'transaction_type': 'deposit',
            'amount': '25000', 'transaction_date': '2025-01-01',
        }).json()['data']['id']

        response = self.client.get(reverse('finance:savings_detail', kwargs={'transaction_id': transaction_id}))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(response.json()['data']['amount']), Decimal('25000'))

        response = self.client.get(reverse('finance:savings_balances'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(response.json()['data']['students'][0]['balance']), Decimal('25000'))

    def test_tuition_rates_only_accepts_get_and_post(self):
        response = self.client.put(reverse('finance:tuition_rates'))
        self.assertEqual(response.status_code, 405)
        response = self.client.delete(reverse('finance:tuition_rates'))
        self.assertEqual(response.status_code, 405)
        self.assertEqual(self.client.get(reverse('finance:tuition_rates')).status_code, 200)

    def test_delete_tuition_rate_endpoint(self):
        response = self.post_json('finance:delete_tuition_rate', {}, pk=self.rate.pk)
        self.assertEqual(response.status_code, 200)
        self.assertFalse(TuitionRate.objects.exists())

        response = self.post_json('finance:delete_tuition_rate', {}, pk=self.rate.pk)
        self.assertEqual(response.status_code, 404)

    def test_academic_year_endpoints(self):
        response = self.post_json('finance:academic_years', {
            'name': '2026/2027', 'start_date': '2026-07-01', 'end_date': '2027-06-30',
            'start_month': 7, 'end_month': 6,
        })
        self.assertEqual(response.status_code, 201)
        created = response.json()['data']
        self.assertFalse(created['is_active'])
        self.assertEqual(len(created['months']), 12)

        response = self.client.get(reverse('finance:academic_years'))
        self.assertEqual(len(response.json()['data']), 2)

        response = self.post_json('finance:update_academic_year', {'name': '2026/27'}, pk=created['id'])
        self.assertEqual(response.status_code, 200)
        response = self.client.get(reverse('finance:academic_year_detail', kwargs={'pk': created['id']}))
        self.assertEqual(response.json()['data']['name'], '2026/27')

        response = self.post_json('finance:delete_academic_year', {}, pk=self.academic_year.pk)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error'], 'AcademicYearLocked')

        response = self.post_json('finance:delete_academic_year', {}, pk=created['id'])
        self.assertEqual(response.status_code, 200)
        self.assertFalse(AcademicYear.objects.filter(pk=created['id']).exists())
