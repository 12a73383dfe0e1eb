from django import forms
from decimal import Decimal

from .models import (
    Scholarship, TuitionRate,
    PAYMENT_METHOD_CHOICES, TRANSACTION_TYPE_CHOICES,
)


def money_field(required=True, min_value=Decimal('0'), **kwargs):
    return forms.DecimalField(
        max_digits=12, decimal_places=2, min_value=min_value, required=required, **kwargs
    )


class BillingMonthForm(forms.Form):
    month = forms.IntegerField(min_value=1, max_value=12)
    year = forms.IntegerField(min_value=2000, max_value=2100)


class PaymentLineForm(BillingMonthForm):
    """One month inside a tuition payment request."""

    amount = money_field(min_value=Decimal('0.01'))


class PaymentForm(forms.Form):
    """Header of a tuition payment request; the month lines are validated by PaymentLineForm."""

    student_id = forms.IntegerField(min_value=1)
    payment_date = forms.DateField()
    subtotal = money_field()
    discount = money_field(required=False)
    late_fee = money_field(required=False)
    total_amount = money_field()
    payment_method = forms.ChoiceField(choices=PAYMENT_METHOD_CHOICES)
    notes = forms.CharField(required=False, max_length=1000)

    def clean(self):
        cd = super().clean()
        cd['discount'] = cd.get('discount') or Decimal('0')
        cd['late_fee'] = cd.get('late_fee') or Decimal('0')
        cd['notes'] = cd.get('notes') or ''
        subtotal = cd.get('subtotal')
        if subtotal is not None and cd['discount'] > subtotal:
            self.add_error('discount', 'Discount cannot exceed the subtotal.')
        return cd


class PaymentUpdateForm(PaymentForm):
    """Same shape as PaymentForm; the student comes from the payment being updated."""

    student_id = forms.IntegerField(min_value=1, required=False)


class QuoteForm(forms.Form):
    payment_date = forms.DateField(required=False)


class BillFilterForm(forms.Form):
    """Query parameters of the student bill overview."""

    BILL_STATUS_CHOICES = [
        ('', 'All'),
        ('unpaid', 'Has unpaid months'),
        ('paid', 'Fully paid'),
    ]

    class_id = forms.IntegerField(min_value=1, required=False)
    grade_level = forms.IntegerField(min_value=1, required=False)
    bill_status = forms.ChoiceField(choices=BILL_STATUS_CHOICES, required=False)


class SavingsTransactionForm(forms.Form):
    student_id = forms.IntegerField(min_value=1)
    transaction_type = forms.ChoiceField(choices=TRANSACTION_TYPE_CHOICES)
    amount = money_field(min_value=Decimal('0.01'))
    transaction_date = forms.DateField()
    notes = forms.CharField(required=False, max_length=1000)


class SavingsCorrectionForm(forms.Form):
    """Correction of the ledger tail; omitted fields keep their stored value."""

    transaction_type = forms.ChoiceField(choices=TRANSACTION_TYPE_CHOICES, required=False)
    amount = money_field(required=False, min_value=Decimal('0.01'))
    transaction_date = forms.DateField(required=False)
    notes = forms.CharField(required=False, max_length=1000)


class ScholarshipForm(forms.ModelForm):
    student_id = forms.IntegerField(min_value=1)

    class Meta:
        model = Scholarship
        fields = [
            'name', 'scholarship_type', 'discount_percentage', 'discount_amount',
            'start_date', 'end_date', 'academic_year', 'description', 'sponsor', 'requirements',
        ]

    def clean(self):
        cd = super().clean()
        stype = cd.get('scholarship_type')
        if stype == 'partial' and cd.get('discount_percentage') is None and cd.get('discount_amount') is None:
            self.add_error('discount_percentage', 'Percentage or fixed amount is required.')
        return cd


class ScholarshipUpdateForm(ScholarshipForm):
    student_id = forms.IntegerField(min_value=1, required=False)


class TuitionRateForm(forms.ModelForm):
    class Meta:
        model = TuitionRate
        fields = [
            'academic_year', 'grade_level', 'monthly_amount', 'due_date',
            'late_fee_enabled', 'late_fee_type', 'late_fee_amount', 'late_fee_start_day',
        ]
