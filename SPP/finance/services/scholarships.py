import logging

from django.db import transaction
from django.db.models import Count, Q
from django.forms.models import model_to_dict
from django.utils import timezone

from ..exceptions import InvalidRequest, NotFoundError, OverlappingScholarship
from ..forms import ScholarshipForm, ScholarshipUpdateForm
from ..models import Scholarship
from ..requests import form_errors
from .base import get_student, lock_student

logger = logging.getLogger(__name__)


class ScholarshipService:
    """
    Scholarship records and their selection for billing.

    A student never holds two overlapping scholarships where either one is
    active, nor two overlapping scholarships with the same name.
    """

    # ─── selection ────────────────────────────────────────────────

    @staticmethod
    def active_scholarships(student):
        return list(
            Scholarship.objects.filter(student=student, status='active').order_by('-start_date', '-id')
        )

    @staticmethod
    def pick_for_month(scholarships, month, year):
        for scholarship in scholarships:
            if scholarship.covers_month(month, year):
                return scholarship
        return None

    @staticmethod
    def active_scholarship_for(student, month, year):
        return ScholarshipService.pick_for_month(
            ScholarshipService.active_scholarships(student), month, year
        )

    # ─── reads ────────────────────────────────────────────────────

    @staticmethod
    def get_scholarship(scholarship_id):
        try:
            return Scholarship.objects.select_related('student', 'academic_year').get(pk=scholarship_id)
        except Scholarship.DoesNotExist:
            raise NotFoundError('Scholarship not found.', {'scholarship_id': scholarship_id})

    @staticmethod
    def list_by_student(student_id):
        student = get_student(student_id)
        scholarships = list(student.scholarships.select_related('academic_year'))
        today = timezone.localdate()
        current = ScholarshipService.active_scholarship_for(student, today.month, today.year)
        return {
            'student': {
                'id': student.pk,
                'nis': student.admission_number,
                'full_name': student.full_name,
            },
            'scholarships': [ScholarshipService.summarize(s) for s in scholarships],
            'has_active_scholarship': current is not None,
            'active_scholarship': ScholarshipService.summarize(current) if current else None,
        }

    @staticmethod
    def summary(recent=10):
        counts = Scholarship.objects.aggregate(
            total=Count('id'),
            active=Count('id', filter=Q(status='active')),
            inactive=Count('id', filter=Q(status='inactive')),
            expired=Count('id', filter=Q(status='expired')),
            full=Count('id', filter=Q(scholarship_type='full')),
            partial=Count('id', filter=Q(scholarship_type='partial')),
        )
        latest = Scholarship.objects.select_related('student').order_by('-created_at')[:recent]
        return {
            'summary': counts,
            'recent_scholarships': [ScholarshipService.summarize(s) for s in latest],
        }

    @staticmethod
    def summarize(scholarship):
        return {
            'id': scholarship.pk,
            'student_id': scholarship.student_id,
            'name': scholarship.name,
            'type': scholarship.scholarship_type,
            'discount_percentage': scholarship.discount_percentage,
            'discount_amount': scholarship.discount_amount,
            'start_date': scholarship.start_date,
            'end_date': scholarship.end_date,
            'status': scholarship.status,
            'academic_year_id': scholarship.academic_year_id,
            'sponsor': scholarship.sponsor,
            'description': scholarship.description,
            'requirements': scholarship.requirements,
        }

    # ─── writes ───────────────────────────────────────────────────

    @staticmethod
    @transaction.atomic
    def create_scholarship(data, actor=None):
        form = ScholarshipForm(data)
        if not form.is_valid():
            raise InvalidRequest(form_errors(form))

        student = lock_student(form.cleaned_data['student_id'])
        scholarship = form.save(commit=False)
        scholarship.student = student
        scholarship.created_by = actor

        ScholarshipService._validate_period(scholarship)
        scholarship.save()

        logger.info(f"Created scholarship '{scholarship.name}' for {student.admission_number} ({scholarship.status})")
        return scholarship

    @staticmethod
    @transaction.atomic
    def update_scholarship(scholarship_id, data):
        scholarship = ScholarshipService.get_scholarship(scholarship_id)
        lock_student(scholarship.student_id)

        merged = model_to_dict(scholarship, fields=ScholarshipForm.Meta.fields)
        # Switching between percentage and fixed amount clears the other one.
        if 'discount_amount' in data and 'discount_percentage' not in data:
            merged['discount_percentage'] = None
        if 'discount_percentage' in data and 'discount_amount' not in data:
            merged['discount_amount'] = None
        merged.update({k: v for k, v in data.items() if k != 'student_id'})

        form = ScholarshipUpdateForm(merged, instance=scholarship)
        if not form.is_valid():
            raise InvalidRequest(form_errors(form))

        scholarship = form.save(commit=False)
        ScholarshipService._validate_period(scholarship)
        scholarship.save()

        logger.info(f"Updated scholarship {scholarship.pk} '{scholarship.name}' ({scholarship.status})")
        return scholarship

    @staticmethod
    @transaction.atomic
    def delete_scholarship(scholarship_id):
        scholarship = ScholarshipService.get_scholarship(scholarship_id)
        lock_student(scholarship.student_id)
        name = scholarship.name
        scholarship.delete()
        logger.info(f"Deleted scholarship {scholarship_id} '{name}'")

    @staticmethod
    def refresh_statuses(today=None):
        """Re-derive every scholarship's status from its dates. Returns the number changed."""
        today = today or timezone.localdate()
        changed = 0
        for scholarship in Scholarship.objects.all().iterator():
            status = scholarship.derive_status(today)
            if status != scholarship.status:
                Scholarship.objects.filter(pk=scholarship.pk).update(status=status)
                changed += 1
        return changed

    # ─── validation ───────────────────────────────────────────────

    @staticmethod
    def _validate_period(scholarship):
        academic_year = scholarship.academic_year
        if academic_year and (
            scholarship.start_date < academic_year.start_date or scholarship.end_date > academic_year.end_date
        ):
            raise InvalidRequest(
                {'start_date': [
                    f"Scholarship dates must fall within academic year {academic_year.name} "
                    f"({academic_year.start_date} to {academic_year.end_date})."
                ]},
                'Scholarship period is outside the academic year.',
            )

        overlapping = Scholarship.objects.filter(
            student_id=scholarship.student_id,
            start_date__lte=scholarship.end_date,
            end_date__gte=scholarship.start_date,
        ).exclude(pk=scholarship.pk)

        for other in overlapping:
            if other.name.strip().lower() == scholarship.name.strip().lower() or other.status == 'active':
                raise OverlappingScholarship(
                    f"Overlaps with scholarship '{other.name}' ({other.start_date} to {other.end_date}).",
                    {
                        'student_id': scholarship.student_id,
                        'existing_scholarship': {
                            'id': other.pk,
                            'name': other.name,
                            'status': other.status,
                            'start_date': other.start_date,
                            'end_date': other.end_date,
                        },
                    },
                )
