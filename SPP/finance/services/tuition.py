import logging

from django.db import transaction

from ..exceptions import DuplicateTuitionRate, InvalidRequest, NotFoundError
from ..forms import TuitionRateForm
from ..models import TuitionRate
from ..requests import form_errors

logger = logging.getLogger(__name__)


class TuitionRateService:
    """Tuition rates per grade level and academic year."""

    @staticmethod
    def list_rates(academic_year_id=None):
        qs = TuitionRate.objects.select_related('academic_year')
        if academic_year_id:
            qs = qs.filter(academic_year_id=academic_year_id)
        return list(qs)

    @staticmethod
    def get_rate(rate_id):
        try:
            return TuitionRate.objects.select_related('academic_year').get(pk=rate_id)
        except TuitionRate.DoesNotExist:
            raise NotFoundError('Tuition rate not found.', {'tuition_rate_id': rate_id})

    @staticmethod
    @transaction.atomic
    def create_rate(data):
        rate = TuitionRateService._save(TuitionRateForm(data))
        logger.info(f"Created tuition rate {rate}")
        return rate

    @staticmethod
    @transaction.atomic
    def update_rate(rate_id, data):
        rate = TuitionRateService.get_rate(rate_id)
        rate = TuitionRateService._save(TuitionRateForm(data, instance=rate))
        logger.info(f"Updated tuition rate {rate}")
        return rate

    @staticmethod
    @transaction.atomic
    def delete_rate(rate_id):
        rate = TuitionRateService.get_rate(rate_id)
        label = str(rate)
        rate.delete()
        logger.info(f"Deleted tuition rate {label}")
        return label

    @staticmethod
    def _save(form):
        valid = form.is_valid()
        cd = form.cleaned_data
        # Duplicates get their own error instead of a generic form error.
        if cd.get('academic_year') and cd.get('grade_level') is not None:
            duplicate = TuitionRate.objects.filter(
                academic_year=cd['academic_year'], grade_level=cd['grade_level']
            ).exclude(pk=form.instance.pk)
            if duplicate.exists():
                raise DuplicateTuitionRate(payload={
                    'academic_year_id': cd['academic_year'].pk,
                    'grade_level': cd['grade_level'],
                })
        if not valid:
            raise InvalidRequest(form_errors(form))
        return form.save()
