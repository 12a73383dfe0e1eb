from datetime import date
from decimal import Decimal

from django.contrib.admin import site
from django.test import RequestFactory, SimpleTestCase, TestCase

from accounts.models import CustomUser
from finance.exceptions import AcademicYearLocked, InvalidRequest
from finance.models import SppPayment
from students.models import Student
from .admin import AcademicYearAdmin
from .models import AcademicYear, Class
from .services import AcademicYearService
from .utils import academic_months, month_position


class AcademicCalendarTests(SimpleTestCase):

    def test_july_to_june_spans_two_calendar_years(self):
        months = academic_months(7, 6, 2024)
        self.assertEqual(len(months), 12)
        self.assertEqual([(m.month, m.year) for m in months[:6]], [(m, 2024) for m in range(7, 13)])
        self.assertEqual([(m.month, m.year) for m in months[6:]], [(m, 2025) for m in range(1, 7)])
        self.assertEqual(months[0].month_name, 'July')

    def test_same_year_range(self):
        months = academic_months(1, 12, 2025)
        self.assertEqual([m.month for m in months], list(range(1, 13)))
        self.assertTrue(all(m.year == 2025 for m in months))

    def test_length_matches_month_count(self):
        for start, end in [(1, 1), (3, 9), (9, 3), (12, 1), (2, 1)]:
            expected = end - start + 1 if start <= end else (12 - start + 1) + end
            self.assertEqual(len(academic_months(start, end, 2024)), expected)

    def test_months_are_strictly_ordered(self):
        months = academic_months(8, 7, 2024)
        keys = [(m.year, m.month) for m in months]
        self.assertEqual(keys, sorted(set(keys)))

    def test_invalid_month_rejected(self):
        with self.assertRaises(ValueError):
            academic_months(0, 6, 2024)
        with self.assertRaises(ValueError):
            academic_months(7, 13, 2024)

    def test_month_position(self):
        months = academic_months(7, 6, 2024)
        self.assertEqual(month_position(months, 7, 2024), 1)
        self.assertEqual(month_position(months, 1, 2025), 7)
        self.assertIsNone(month_position(months, 1, 2024))


class AcademicYearModelTests(TestCase):

    def setUp(self):
        self.year = AcademicYear.objects.create(
            name='2024/2025', start_date=date(2024, 7, 15), end_date=date(2025, 6, 30),
            start_month=7, end_month=6,
        )

    def test_is_within_academic_year(self):
        self.assertTrue(self.year.is_within_academic_year(12, 2024))
        self.assertTrue(self.year.is_within_academic_year(6, 2025))
        self.assertFalse(self.year.is_within_academic_year(7, 2025))

    def test_current_academic_month(self):
        current = self.year.current_academic_month(today=date(2025, 2, 10))
        self.assertEqual((current.month, current.year), (2, 2025))
        self.assertIsNone(self.year.current_academic_month(today=date(2025, 8, 1)))


class AcademicYearServiceTests(TestCase):

    def _data(self, name, start_year, **extra):
        data = {
            'name': name,
            'start_date': date(start_year, 7, 1),
            'end_date': date(start_year + 1, 6, 30),
            'start_month': 7,
            'end_month': 6,
        }
        data.update(extra)
        return data

    def test_first_year_is_activated_automatically(self):
        year = AcademicYearService.create_academic_year(self._data('2024/2025', 2024))
        self.assertTrue(year.is_active)

    def test_second_year_stays_inactive_unless_requested(self):
        AcademicYearService.create_academic_year(self._data('2024/2025', 2024))
        second = AcademicYearService.create_academic_year(self._data('2025/2026', 2025))
        self.assertFalse(second.is_active)

    def test_activation_leaves_single_active_year(self):
        first = AcademicYearService.create_academic_year(self._data('2024/2025', 2024))
        second = AcademicYearService.create_academic_year(self._data('2025/2026', 2025))

        AcademicYearService.activate(second.pk)

        first.refresh_from_db()
        second.refresh_from_db()
        self.assertFalse(first.is_active)
        self.assertTrue(second.is_active)
        self.assertEqual(AcademicYear.objects.filter(is_active=True).count(), 1)

    def test_create_active_year_deactivates_previous(self):
        AcademicYearService.create_academic_year(self._data('2024/2025', 2024))
        AcademicYearService.create_academic_year(self._data('2025/2026', 2025, is_active=True))
        active = AcademicYear.objects.filter(is_active=True)
        self.assertEqual([y.name for y in active], ['2025/2026'])

    def test_cannot_deactivate_sole_active_year(self):
        year = AcademicYearService.create_academic_year(self._data('2024/2025', 2024))
        with self.assertRaises(AcademicYearLocked):
            AcademicYearService.update_academic_year(year.pk, {'is_active': False})
        year.refresh_from_db()
        self.assertTrue(year.is_active)

    def test_cannot_delete_active_year(self):
        year = AcademicYearService.create_academic_year(self._data('2024/2025', 2024))
        with self.assertRaises(AcademicYearLocked):
            AcademicYearService.delete_academic_year(year.pk)
        self.assertTrue(AcademicYear.objects.filter(pk=year.pk).exists())

    def test_cannot_delete_year_in_use(self):
        AcademicYearService.create_academic_year(self._data('2024/2025', 2024))
        old = AcademicYearService.create_academic_year(self._data('2023/2024', 2023))
        Class.objects.create(name='7A', grade_level=7, academic_year=old)
        with self.assertRaises(AcademicYearLocked):
            AcademicYearService.delete_academic_year(old.pk)

    def test_delete_unused_inactive_year(self):
        AcademicYearService.create_academic_year(self._data('2024/2025', 2024))
        old = AcademicYearService.create_academic_year(self._data('2023/2024', 2023))
        AcademicYearService.delete_academic_year(old.pk)
        self.assertFalse(AcademicYear.objects.filter(pk=old.pk).exists())

    def test_end_date_must_follow_start_date(self):
        data = self._data('Broken', 2024, end_date=date(2024, 6, 1))
        with self.assertRaises(InvalidRequest) as ctx:
            AcademicYearService.create_academic_year(data)
        self.assertIn('end_date', ctx.exception.errors)

    def test_duplicate_name_rejected(self):
        AcademicYearService.create_academic_year(self._data('2024/2025', 2024))
        with self.assertRaises(InvalidRequest):
            AcademicYearService.create_academic_year(self._data('2024/2025', 2024))

    def test_cannot_delete_year_with_payments(self):
        current = AcademicYearService.create_academic_year(self._data('2024/2025', 2024))
        old = AcademicYearService.create_academic_year(self._data('2023/2024', 2023))
        user = CustomUser.objects.create_user(email='accountant@test.com', password='password')
        cls = Class.objects.create(name='7A', grade_level=7, academic_year=current)
        student = Student.objects.create(admission_number='1001', first_name='Budi', student_class=cls)
        SppPayment.objects.create(
            receipt_number='KWT/SPP/2023/00001', student=student, academic_year=old,
            payment_date=date(2023, 7, 5), subtotal=Decimal('150000'), total_amount=Decimal('150000'),
            created_by=user,
        )

        with self.assertRaises(AcademicYearLocked):
            AcademicYearService.delete_academic_year(old.pk)
        self.assertTrue(AcademicYear.objects.filter(pk=old.pk).exists())

    def test_update_changes_fields(self):
        year = AcademicYearService.create_academic_year(self._data('2024/2025', 2024))
        updated = AcademicYearService.update_academic_year(year.pk, {'name': 'TA 2024/2025', 'end_month': 5})
        self.assertEqual(updated.name, 'TA 2024/2025')
        self.assertEqual(updated.end_month, 5)
        self.assertTrue(updated.allow_partial_payment)
        self.assertTrue(updated.is_active)


class AcademicYearAdminTests(TestCase):

    def setUp(self):
        self.admin = AcademicYearAdmin(AcademicYear, site)
        self.request = RequestFactory().post('/admin/academics/academicyear/')
        self.request.user = CustomUser.objects.create_superuser(email='admin@test.com', password='password')
        self.active = AcademicYear.objects.create(
            name='2030/2031', start_date=date(2030, 7, 1), end_date=date(2031, 6, 30), is_active=True
        )

    def test_bulk_delete_keeps_active_year(self):
        with self.assertRaises(AcademicYearLocked):
            self.admin.delete_queryset(self.request, AcademicYear.objects.all())
        self.assertEqual(AcademicYear.objects.filter(is_active=True).count(), 1)

    def test_bulk_delete_is_all_or_nothing(self):
        unused = AcademicYear.objects.create(
            name='2029/2030', start_date=date(2029, 7, 1), end_date=date(2030, 6, 30)
        )
        with self.assertRaises(AcademicYearLocked):
            self.admin.delete_queryset(self.request, AcademicYear.objects.order_by('start_date'))
        self.assertTrue(AcademicYear.objects.filter(pk=unused.pk).exists())

    def test_delete_not_offered_for_locked_year(self):
        unused = AcademicYear.objects.create(
            name='2029/2030', start_date=date(2029, 7, 1), end_date=date(2030, 6, 30)
        )
        self.assertFalse(self.admin.has_delete_permission(self.request, self.active))
        self.assertTrue(self.admin.has_delete_permission(self.request, unused))

    def test_save_activates_first_year(self):
        self.active.delete()
        year = AcademicYear(name='2031/2032', start_date=date(2031, 7, 1), end_date=date(2032, 6, 30))
        self.admin.save_model(self.request, year, form=None, change=False)
        year.refresh_from_db()
        self.assertTrue(year.is_active)

    def test_save_keeps_existing_active_year(self):
        year = AcademicYear(name='2031/2032', start_date=date(2031, 7, 1), end_date=date(2032, 6, 30))
        self.admin.save_model(self.request, year, form=None, change=False)
        self.active.refresh_from_db()
        self.assertTrue(self.active.is_active)
        self.assertFalse(AcademicYear.objects.get(pk=year.pk).is_active)
