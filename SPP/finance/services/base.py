"""
Lookups shared by the finance services.

Every mutation starts from ``lock_student``: the student row is the lock
that serializes payments and savings entries for that student.
"""

from academics.services import AcademicYearService
from students.models import Student
from ..exceptions import NotFoundError
from ..models import TuitionRate


def get_student(student_id, lock=False):
    qs = Student.objects.select_related('student_class__academic_year')
    if lock:
        # PostgreSQL refuses FOR UPDATE across the nullable class join.
        qs = qs.select_for_update(of=('self',))
    try:
        return qs.get(pk=student_id)
    except Student.DoesNotExist:
        raise NotFoundError('Student not found.', {'student_id': student_id})


def lock_student(student_id):
    return get_student(student_id, lock=True)


def resolve_academic_year(student):
    """The academic year of the student's class, else the active year."""
    academic_year = student.academic_year or AcademicYearService.get_active_academic_year()
    if academic_year is None:
        raise NotFoundError('No academic year found for this student.', {'student_id': student.pk})
    return academic_year


def get_tuition_rate(student, academic_year):
    if student.grade_level is None:
        raise NotFoundError(
            'Student is not assigned to a class.', {'student_id': student.pk}
        )
    rate = TuitionRate.objects.filter(
        academic_year=academic_year, grade_level=student.grade_level
    ).first()
    if rate is None:
        raise NotFoundError(
            'No tuition rate is configured for this grade level.',
            {'academic_year_id': academic_year.pk, 'grade_level': student.grade_level},
        )
    return rate
