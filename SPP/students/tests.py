from datetime import date

from django.core.exceptions import ValidationError
from django.test import TestCase
from django.utils import timezone

from academics.models import AcademicYear, Class
from .models import Student


class StudentModelTests(TestCase):

    def setUp(self):
        self.academic_year = AcademicYear.objects.create(
            name='2024/2025', start_date=date(2024, 7, 1), end_date=date(2025, 6, 30), is_active=True
        )
        self.cls = Class.objects.create(name='8B', grade_level=8, academic_year=self.academic_year)

    def test_full_name(self):
        student = Student(admission_number='1001', first_name='Siti', last_name='Aminah')
        self.assertEqual(student.full_name, 'Siti Aminah')
        self.assertEqual(Student(admission_number='1002', first_name='Rina').full_name, 'Rina')

    def test_grade_and_year_follow_class(self):
        student = Student.objects.create(admission_number='1001', first_name='Siti', student_class=self.cls)
        self.assertEqual(student.grade_level, 8)
        self.assertEqual(student.academic_year, self.academic_year)

    def test_unassigned_student(self):
        student = Student.objects.create(admission_number='1003', first_name='Ahmad')
        self.assertIsNone(student.grade_level)
        self.assertIsNone(student.academic_year)
        self.assertEqual(student.enrollment_date, timezone.localdate())

    def test_parent_phone_format(self):
        student = Student(admission_number='1004', first_name='Dewi', parent_phone='08-12')
        with self.assertRaises(ValidationError) as ctx:
            student.full_clean()
        self.assertIn('parent_phone', ctx.exception.message_dict)
