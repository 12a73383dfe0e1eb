"""
Receipt and savings transaction numbers: ``{prefix}/{year}/{n:05d}``.

Each prefix/year pair has a DocumentSequence row. The row is created on
first use, seeded with the number of records already carrying that
prefix and year, and then incremented under ``select_for_update`` so two
concurrent payments never receive the same number.
"""

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from .models import DocumentSequence, SavingsTransaction, SppPayment


def format_number(prefix, year, value):
    padding = settings.SPP_FINANCE['NUMBER_PADDING']
    return f"{prefix}/{year}/{value:0{padding}d}"


@transaction.atomic
def next_number(prefix, year, seed_queryset, field_name):
    key = f"{prefix}/{year}"
    sequence = DocumentSequence.objects.select_for_update().filter(key=key).first()
    if sequence is None:
        seed = seed_queryset.filter(**{f"{field_name}__startswith": f"{key}/"}).count()
        try:
            with transaction.atomic():
                sequence = DocumentSequence.objects.create(key=key, last_value=seed)
        except IntegrityError:
            # Created by a concurrent request between the lookup and the insert.
            pass
        sequence = DocumentSequence.objects.select_for_update().get(key=key)

    sequence.last_value += 1
    sequence.save(update_fields=['last_value', 'updated_at'])
    return format_number(prefix, year, sequence.last_value)


def next_receipt_number(today=None):
    year = (today or timezone.localdate()).year
    return next_number(
        settings.SPP_FINANCE['RECEIPT_PREFIX'], year, SppPayment.objects.all(), 'receipt_number'
    )


def next_savings_number(today=None):
    year = (today or timezone.localdate()).year
    return next_number(
        settings.SPP_FINANCE['SAVINGS_PREFIX'], year, SavingsTransaction.objects.all(), 'transaction_number'
    )
