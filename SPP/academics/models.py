from django.db import models
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.utils import timezone
from django.conf import settings

from .utils import academic_months, month_position


MONTH_VALIDATORS = [MinValueValidator(1), MaxValueValidator(12)]


class AcademicYear(models.Model):
    """
    AcademicYear Model - A school year, e.g. 2024/2025.

    Tuition is billed for every month between ``start_month`` and
    ``end_month``; when the start month is later than the end month the
    year continues into the next calendar year. Exactly one academic year
    is active at a time (see ``AcademicYearService.activate``).
    """

    # Basic Information
    name = models.CharField(max_length=50, unique=True, verbose_name="Academic Year")
    start_date = models.DateField(verbose_name="Start Date")
    end_date = models.DateField(verbose_name="End Date")

    # Billing months
    start_month = models.PositiveSmallIntegerField(
        default=7,
        validators=MONTH_VALIDATORS,
        verbose_name="First Billing Month",
    )
    end_month = models.PositiveSmallIntegerField(
        default=6,
        validators=MONTH_VALIDATORS,
        verbose_name="Last Billing Month",
    )
    allow_partial_payment = models.BooleanField(
        default=True,
        verbose_name="Allow Partial Payment",
        help_text="Students may pay a subset of the outstanding months at once",
    )

    # Status
    is_active = models.BooleanField(default=False, verbose_name="Is Active")

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'academic_years'
        verbose_name = "Academic Year"
        verbose_name_plural = "Academic Years"
        ordering = ['-start_date']

    def __str__(self):
        return self.name

    def clean(self):
        errors = {}
        if self.start_date and self.end_date:
            if self.end_date <= self.start_date:
                errors['end_date'] = 'End date must be after the start date.'
            elif (self.end_date.year - self.start_date.year) * 12 + self.end_date.month - self.start_date.month < 1:
                errors['end_date'] = 'An academic year must last at least one month.'
        if errors:
            raise ValidationError(errors)

    def academic_months(self):
        """Ordered (month, year, month_name) tuples billed in this year."""
        return academic_months(self.start_month, self.end_month, self.start_date.year)

    def is_within_academic_year(self, month, year):
        return month_position(self.academic_months(), month, year) is not None

    def current_academic_month(self, today=None):
        today = today or timezone.localdate()
        for item in self.academic_months():
            if item.month == today.month and item.year == today.year:
                return item
        return None


class Class(models.Model):
    """
    Class Model - A grade level taught in a given academic year.
    Example: Grade 7A for 2024/2025. Tuition rates are looked up by
    ``grade_level`` within the class's academic year.
    """

    # Basic Information
    name = models.CharField(max_length=100, verbose_name="Class Name")
    grade_level = models.PositiveSmallIntegerField(
        verbose_name="Grade Level",
        help_text="e.g., 7 for Grade 7",
    )

    # Relationships
    academic_year = models.ForeignKey(
        AcademicYear,
        on_delete=models.PROTECT,
        related_name='classes',
        verbose_name="Academic Year"
    )

    # Status
    is_active = models.BooleanField(default=True, verbose_name="Is Active")

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_classes'
    )

    class Meta:
        db_table = 'classes'
        verbose_name = "Class"
        verbose_name_plural = "Classes"
        ordering = ['grade_level', 'name']
        unique_together = ['name', 'academic_year']  # One class name per academic year

    def __str__(self):
        return f"{self.name} ({self.academic_year})"
