from django.db import models
from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.utils import timezone
from decimal import Decimal
from datetime import date

from academics.utils import month_name
from .calculations import scholarship_discount


MONEY = dict(max_digits=12, decimal_places=2)

DAY_VALIDATORS = [MinValueValidator(1), MaxValueValidator(31)]
MONTH_VALIDATORS = [MinValueValidator(1), MaxValueValidator(12)]

LATE_FEE_TYPE_CHOICES = [
    ('fixed', 'Fixed Amount'),
    ('percentage', 'Percentage'),
]

PAYMENT_METHOD_CHOICES = [
    ('cash', 'Cash'),
    ('transfer', 'Bank Transfer'),
]

TRANSACTION_TYPE_CHOICES = [
    ('deposit', 'Deposit'),
    ('withdrawal', 'Withdrawal'),
]

SCHOLARSHIP_TYPE_CHOICES = [
    ('full', 'Full'),
    ('partial', 'Partial'),
]

SCHOLARSHIP_STATUS_CHOICES = [
    ('active', 'Active'),
    ('inactive', 'Inactive'),
    ('expired', 'Expired'),
]


class TuitionRate(models.Model):
    """
    Monthly tuition (SPP) for one grade level in one academic year,
    with an optional late fee policy.
    """

    academic_year = models.ForeignKey(
        'academics.AcademicYear', on_delete=models.PROTECT,
        related_name='tuition_rates', verbose_name="Academic Year"
    )
    grade_level = models.PositiveSmallIntegerField(verbose_name="Grade Level")
    monthly_amount = models.DecimalField(**MONEY, verbose_name="Monthly Amount")
    due_date = models.PositiveSmallIntegerField(
        default=10, validators=DAY_VALIDATORS,
        verbose_name="Due Day", help_text="Day of the month the tuition is due"
    )

    # Late fee policy
    late_fee_enabled = models.BooleanField(default=False, verbose_name="Late Fee Enabled")
    late_fee_type = models.CharField(
        max_length=10, choices=LATE_FEE_TYPE_CHOICES, null=True, blank=True,
        verbose_name="Late Fee Type"
    )
    late_fee_amount = models.DecimalField(
        **MONEY, null=True, blank=True, verbose_name="Late Fee Amount",
        help_text="Fixed amount, or percentage of the monthly amount"
    )
    late_fee_start_day = models.PositiveSmallIntegerField(
        null=True, blank=True, validators=DAY_VALIDATORS,
        verbose_name="Late Fee Start Day", help_text="Must come after the due day"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'spp_settings'
        verbose_name = "Tuition Rate"
        verbose_name_plural = "Tuition Rates"
        ordering = ['academic_year', 'grade_level']
        constraints = [
            models.UniqueConstraint(
                fields=['academic_year', 'grade_level'], name='unique_tuition_rate_per_grade'
            ),
        ]

    def __str__(self):
        return f"Grade {self.grade_level} - {self.academic_year}: {self.monthly_amount}"

    def clean(self):
        errors = {}
        if self.monthly_amount is not None and self.monthly_amount <= 0:
            errors['monthly_amount'] = 'Monthly amount must be greater than zero.'

        grade_levels = settings.SPP_FINANCE['GRADE_LEVELS']
        if self.grade_level is not None and grade_levels and self.grade_level not in grade_levels:
            errors['grade_level'] = f"Grade level must be one of {', '.join(map(str, grade_levels))}."

        if self.late_fee_enabled:
            if not self.late_fee_type:
                errors['late_fee_type'] = 'Late fee type is required when the late fee is enabled.'
            if self.late_fee_amount is None or self.late_fee_amount <= 0:
                errors['late_fee_amount'] = 'Late fee amount must be greater than zero.'
            elif self.late_fee_type == 'percentage' and self.late_fee_amount > 100:
                errors['late_fee_amount'] = 'Late fee percentage cannot exceed 100.'
            if self.late_fee_start_day is None:
                errors['late_fee_start_day'] = 'Late fee start day is required when the late fee is enabled.'
            elif self.due_date and self.late_fee_start_day <= self.due_date:
                errors['late_fee_start_day'] = 'Late fee start day must be after the due day.'

        if errors:
            raise ValidationError(errors)


class SppPayment(models.Model):
    """A tuition payment covering one or more months, identified by its receipt number."""

    receipt_number = models.CharField(max_length=50, unique=True, verbose_name="Receipt Number")
    student = models.ForeignKey(
        'students.Student', on_delete=models.PROTECT,
        related_name='spp_payments', verbose_name="Student"
    )
    academic_year = models.ForeignKey(
        'academics.AcademicYear', on_delete=models.PROTECT,
        related_name='spp_payments', verbose_name="Academic Year"
    )
    payment_date = models.DateField(verbose_name="Payment Date")

    subtotal = models.DecimalField(**MONEY, verbose_name="Subtotal")
    discount = models.DecimalField(**MONEY, default=Decimal('0'), verbose_name="Discount")
    late_fee = models.DecimalField(**MONEY, default=Decimal('0'), verbose_name="Late Fee")
    total_amount = models.DecimalField(**MONEY, verbose_name="Total Amount")

    payment_method = models.CharField(
        max_length=10, choices=PAYMENT_METHOD_CHOICES, default='cash',
        verbose_name="Payment Method"
    )
    notes = models.TextField(blank=True, verbose_name="Notes")

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT,
        related_name='spp_payments_created', verbose_name="Received By"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'spp_payments'
        verbose_name = "SPP Payment"
        verbose_name_plural = "SPP Payments"
        ordering = ['-payment_date', '-id']
        indexes = [
            models.Index(fields=['student', 'academic_year'], name='spp_pay_student_year_idx'),
            models.Index(fields=['payment_date'], name='spp_pay_date_idx'),
        ]

    def __str__(self):
        return f"{self.receipt_number} - {self.student} - {self.total_amount}"

    @property
    def months_label(self):
        return ', '.join(f"{d.month_name} {d.year}" for d in self.details.all())


class SppPaymentDetail(models.Model):
    """One paid month inside an SppPayment."""

    payment = models.ForeignKey(
        SppPayment, on_delete=models.CASCADE,
        related_name='details', verbose_name="Payment"
    )
    month = models.PositiveSmallIntegerField(validators=MONTH_VALIDATORS, verbose_name="Month")
    year = models.PositiveSmallIntegerField(verbose_name="Year")
    amount = models.DecimalField(**MONEY, verbose_name="Amount")

    class Meta:
        db_table = 'spp_payment_details'
        verbose_name = "SPP Payment Detail"
        verbose_name_plural = "SPP Payment Details"
        ordering = ['year', 'month']
        constraints = [
            models.UniqueConstraint(
                fields=['payment', 'month', 'year'], name='unique_month_per_payment'
            ),
        ]

    def __str__(self):
        return f"{self.month_name} {self.year}: {self.amount}"

    @property
    def month_name(self):
        return month_name(self.month)


class SavingsAccount(models.Model):
    """
    Ledger head for one student's savings.

    ``last_transaction`` is the ledger tail: the only entry that may be
    corrected or deleted. ``balance`` mirrors its ``balance_after``.
    """

    student = models.OneToOneField(
        'students.Student', on_delete=models.PROTECT,
        related_name='savings_account', verbose_name="Student"
    )
    balance = models.DecimalField(**MONEY, default=Decimal('0'), verbose_name="Balance")
    last_transaction = models.ForeignKey(
        'SavingsTransaction', on_delete=models.SET_NULL,
        null=True, blank=True, related_name='+', verbose_name="Last Transaction"
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'savings_accounts'
        verbose_name = "Savings Account"
        verbose_name_plural = "Savings Accounts"

    def __str__(self):
        return f"{self.student} - {self.balance}"


class SavingsTransaction(models.Model):
    """A deposit or withdrawal in a student's savings ledger."""

    transaction_number = models.CharField(max_length=50, unique=True, verbose_name="Transaction Number")
    student = models.ForeignKey(
        'students.Student', on_delete=models.PROTECT,
        related_name='savings_transactions', verbose_name="Student"
    )
    transaction_type = models.CharField(
        max_length=10, choices=TRANSACTION_TYPE_CHOICES, verbose_name="Transaction Type"
    )
    amount = models.DecimalField(**MONEY, verbose_name="Amount")
    balance_before = models.DecimalField(**MONEY, verbose_name="Balance Before")
    balance_after = models.DecimalField(**MONEY, verbose_name="Balance After")
    transaction_date = models.DateField(verbose_name="Transaction Date")
    notes = models.TextField(blank=True, verbose_name="Notes")

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT,
        related_name='savings_transactions_created', verbose_name="Recorded By"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'savings_transactions'
        verbose_name = "Savings Transaction"
        verbose_name_plural = "Savings Transactions"
        ordering = ['transaction_date', 'id']
        indexes = [
            models.Index(fields=['student', 'transaction_date', 'id'], name='savings_student_order_idx'),
            models.Index(fields=['transaction_type'], name='savings_type_idx'),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(amount__gt=0), name='savings_amount_positive'),
            models.CheckConstraint(condition=models.Q(balance_after__gte=0), name='savings_balance_not_negative'),
        ]

    def __str__(self):
        return f"{self.transaction_number} - {self.get_transaction_type_display()} {self.amount}"

    @property
    def signed_amount(self):
        return self.amount if self.transaction_type == 'deposit' else -self.amount


class Scholarship(models.Model):
    """
    Scholarship granted to a student for a date range.

    ``status`` is derived from the dates on every save: expired once the end
    date has passed, active while today falls inside the range, inactive
    before it starts.
    """

    student = models.ForeignKey(
        'students.Student', on_delete=models.CASCADE,
        related_name='scholarships', verbose_name="Student"
    )
    name = models.CharField(max_length=255, verbose_name="Scholarship Name")
    scholarship_type = models.CharField(
        max_length=10, choices=SCHOLARSHIP_TYPE_CHOICES, default='full',
        verbose_name="Scholarship Type"
    )
    discount_percentage = models.DecimalField(
        max_digits=5, decimal_places=2, null=True, blank=True,
        verbose_name="Discount (%)",
        help_text="Partial scholarships only; leave empty when a fixed amount is set"
    )
    discount_amount = models.DecimalField(
        **MONEY, null=True, blank=True,
        verbose_name="Discount Amount",
        help_text="Partial scholarships only; fixed discount per month"
    )

    start_date = models.DateField(verbose_name="Start Date")
    end_date = models.DateField(verbose_name="End Date")
    status = models.CharField(
        max_length=10, choices=SCHOLARSHIP_STATUS_CHOICES, default='active',
        editable=False, verbose_name="Status"
    )

    academic_year = models.ForeignKey(
        'academics.AcademicYear', on_delete=models.SET_NULL,
        null=True, blank=True, related_name='scholarships', verbose_name="Academic Year"
    )
    description = models.TextField(blank=True, verbose_name="Description")
    sponsor = models.CharField(max_length=255, blank=True, verbose_name="Sponsor")
    requirements = models.TextField(blank=True, verbose_name="Requirements")

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='created_scholarships'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'scholarships'
        verbose_name = "Scholarship"
        verbose_name_plural = "Scholarships"
        ordering = ['-start_date', '-id']
        indexes = [
            models.Index(fields=['student', 'status'], name='scholarship_student_status_idx'),
        ]

    def __str__(self):
        if self.scholarship_type == 'full':
            return f"{self.name} (100%)"
        if self.discount_amount:
            return f"{self.name} ({self.discount_amount})"
        return f"{self.name} ({self.discount_percentage}%)"

    def clean(self):
        errors = {}
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            errors['end_date'] = 'End date must be after the start date.'

        if self.scholarship_type == 'partial':
            has_percentage = self.discount_percentage is not None
            has_amount = self.discount_amount is not None
            if has_percentage == has_amount:
                errors['discount_percentage'] = 'Partial scholarships need either a percentage or a fixed amount, not both.'
            elif has_percentage and not Decimal('0') < self.discount_percentage <= Decimal('100'):
                errors['discount_percentage'] = 'Discount percentage must be between 0 and 100.'
            elif has_amount and self.discount_amount <= 0:
                errors['discount_amount'] = 'Discount amount must be greater than zero.'

        if errors:
            raise ValidationError(errors)

    def save(self, *args, **kwargs):
        if self.scholarship_type == 'full':
            self.discount_percentage = Decimal('100')
            self.discount_amount = None
        self.status = self.derive_status()
        if 'update_fields' in kwargs and kwargs['update_fields'] is not None:
            kwargs['update_fields'] = set(kwargs['update_fields']) | {'status'}
        super().save(*args, **kwargs)

    def derive_status(self, today=None):
        today = today or timezone.localdate()
        if self.end_date < today:
            return 'expired'
        if self.start_date <= today:
            return 'active'
        return 'inactive'

    def covers_month(self, month, year):
        """Active for a month when the month's first day falls inside the date range."""
        first_day = date(year, month, 1)
        return self.status == 'active' and self.start_date <= first_day <= self.end_date

    def calculate_discount(self, gross_amount):
        return scholarship_discount(
            self.scholarship_type, self.discount_percentage, self.discount_amount, gross_amount
        )


class DocumentSequence(models.Model):
    """Counter behind receipt and savings transaction numbers, one row per key."""

    key = models.CharField(max_length=50, unique=True, verbose_name="Sequence Key")
    last_value = models.PositiveIntegerField(default=0, verbose_name="Last Value")
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'document_sequences'
        verbose_name = "Document Sequence"
        verbose_name_plural = "Document Sequences"

    def __str__(self):
        return f"{self.key}: {self.last_value}"
