"""
Academic year lifecycle.

Keeps the "exactly one active academic year" rule in one place: every
activation deactivates the other years inside the same transaction.
The admin and the JSON endpoints both save and delete through here.
"""

import logging

from django.db import transaction
from django.forms.models import model_to_dict

from finance.exceptions import AcademicYearLocked, InvalidRequest, NotFoundError
from finance.requests import form_errors
from .forms import AcademicYearForm
from .models import AcademicYear

logger = logging.getLogger(__name__)


class AcademicYearService:

    @staticmethod
    def get_active_academic_year():
        return AcademicYear.objects.filter(is_active=True).first()

    @staticmethod
    def get_academic_year(year_id):
        try:
            return AcademicYear.objects.get(pk=year_id)
        except AcademicYear.DoesNotExist:
            raise NotFoundError('Academic year not found.', {'academic_year_id': year_id})

    @staticmethod
    def list_academic_years():
        return list(AcademicYear.objects.all())

    @staticmethod
    def summarize(academic_year):
        return {
            'id': academic_year.pk,
            'name': academic_year.name,
            'start_date': academic_year.start_date,
            'end_date': academic_year.end_date,
            'start_month': academic_year.start_month,
            'end_month': academic_year.end_month,
            'allow_partial_payment': academic_year.allow_partial_payment,
            'is_active': academic_year.is_active,
            'months': [
                {'month': m.month, 'year': m.year, 'month_name': m.month_name}
                for m in academic_year.academic_months()
            ],
        }

    @staticmethod
    def deletion_blocker(academic_year):
        """Why ``academic_year`` cannot be deleted, or None when it can."""
        if academic_year.is_active:
            return 'Cannot delete the active academic year. Activate another year first.'
        if (
            academic_year.classes.exists()
            or academic_year.tuition_rates.exists()
            or academic_year.spp_payments.exists()
        ):
            return 'Academic year is in use by classes, tuition rates or payments and cannot be deleted.'
        return None

    # ─── writes ───────────────────────────────────────────────────

    @staticmethod
    @transaction.atomic
    def create_academic_year(data):
        """
        Create an academic year.

        Args:
            data (dict): name, start_date, end_date, start_month, end_month,
                optional allow_partial_payment and is_active.

        The new year becomes active when requested, or automatically when no
        other year is active yet.
        """
        form = AcademicYearForm({'allow_partial_payment': True, **data})
        if not form.is_valid():
            raise InvalidRequest(form_errors(form), 'Academic year data is invalid.')

        academic_year = AcademicYearService.save_academic_year(
            form.save(commit=False), activate=bool(data.get('is_active'))
        )
        logger.info(f"Created academic year {academic_year.name} (active={academic_year.is_active})")
        return academic_year

    @staticmethod
    @transaction.atomic
    def update_academic_year(year_id, data):
        academic_year = AcademicYearService._locked(year_id)

        if 'is_active' in data and not data['is_active'] and academic_year.is_active:
            raise AcademicYearLocked(
                'Cannot deactivate the only active academic year. Activate another year first.',
                {'academic_year_id': academic_year.pk, 'minimum_required': 1},
            )

        fields = AcademicYearForm.Meta.fields
        merged = model_to_dict(academic_year, fields=fields)
        merged.update({key: value for key, value in data.items() if key in fields})
        form = AcademicYearForm(merged, instance=academic_year)
        if not form.is_valid():
            raise InvalidRequest(form_errors(form), 'Academic year data is invalid.')

        academic_year = AcademicYearService.save_academic_year(
            form.save(commit=False), activate=bool(data.get('is_active'))
        )
        logger.info(f"Updated academic year {academic_year.name}")
        return academic_year

    @staticmethod
    @transaction.atomic
    def save_academic_year(academic_year, activate=False):
        """
        Save an already validated academic year. It becomes the active year
        when ``activate`` is set or when no other year is active.
        """
        others_active = AcademicYear.objects.filter(is_active=True).exclude(pk=academic_year.pk)
        activate = activate or not others_active.exists()
        academic_year.save()
        if activate:
            AcademicYearService._make_sole_active(academic_year)
        return academic_year

    @staticmethod
    @transaction.atomic
    def activate(year_id):
        """Make ``year_id`` the single active academic year."""
        academic_year = AcademicYearService._locked(year_id)
        AcademicYearService._make_sole_active(academic_year)
        logger.info(f"Activated academic year {academic_year.name}")
        return academic_year

    @staticmethod
    @transaction.atomic
    def delete_academic_year(year_id):
        academic_year = AcademicYearService._locked(year_id)

        reason = AcademicYearService.deletion_blocker(academic_year)
        if reason:
            logger.warning(f"Refused to delete academic year {academic_year.name}: {reason}")
            raise AcademicYearLocked(reason, {'academic_year_id': academic_year.pk, 'name': academic_year.name})

        name = academic_year.name
        academic_year.delete()
        logger.info(f"Deleted academic year {name}")
        return name

    # ─── helpers ──────────────────────────────────────────────────

    @staticmethod
    def _locked(year_id):
        try:
            return AcademicYear.objects.select_for_update().get(pk=year_id)
        except AcademicYear.DoesNotExist:
            raise NotFoundError('Academic year not found.', {'academic_year_id': year_id})

    @staticmethod
    def _make_sole_active(academic_year):
        # Lock every active row so two concurrent activations serialize.
        list(AcademicYear.objects.select_for_update().filter(is_active=True))
        AcademicYear.objects.exclude(pk=academic_year.pk).filter(is_active=True).update(is_active=False)
        if not academic_year.is_active:
            academic_year.is_active = True
            academic_year.save(update_fields=['is_active', 'updated_at'])
