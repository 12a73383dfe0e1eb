from django.db import models
from django.core.validators import RegexValidator
from django.utils import timezone
from django.conf import settings


class Student(models.Model):
    """
    Student Model - Represents a student enrolled in a class.
    The admission number doubles as the student's NIS on receipts.
    """

    GENDER_CHOICES = [
        ('male', 'Male'),
        ('female', 'Female'),
    ]

    # Phone number validation
    phone_regex = RegexValidator(
        regex=r'^\+?\d{9,15}$',
        message="Phone number must be entered in format: '+999999999'. Up to 15 digits allowed."
    )

    # Basic Information
    admission_number = models.CharField(
        max_length=50,
        unique=True,
        verbose_name="Admission Number (NIS)"
    )
    first_name = models.CharField(max_length=100, verbose_name="First Name")
    last_name = models.CharField(max_length=100, blank=True, verbose_name="Last Name")
    gender = models.CharField(
        max_length=10,
        choices=GENDER_CHOICES,
        blank=True,
        verbose_name="Gender"
    )
    date_of_birth = models.DateField(null=True, blank=True, verbose_name="Date of Birth")

    # Contact Information
    parent_name = models.CharField(max_length=200, blank=True, verbose_name="Parent Name")
    parent_phone = models.CharField(
        validators=[phone_regex],
        max_length=17,
        blank=True,
        verbose_name="Parent Phone"
    )

    # Academic Information
    student_class = models.ForeignKey(
        'academics.Class',
        on_delete=models.PROTECT,
        related_name='students',
        null=True,
        blank=True,
        verbose_name="Class"
    )

    # Status
    is_active = models.BooleanField(default=True, verbose_name="Is Active")
    enrollment_date = models.DateField(default=timezone.localdate, verbose_name="Enrollment Date")

    # Audit Fields
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_students'
    )

    class Meta:
        db_table = 'students'
        verbose_name = "Student"
        verbose_name_plural = "Students"
        ordering = ['first_name', 'last_name']
        indexes = [
            models.Index(fields=['student_class', 'is_active'], name='students_class_active_idx'),
            models.Index(fields=['first_name', 'last_name'], name='students_name_idx'),
        ]

    def __str__(self):
        return f"{self.full_name} ({self.admission_number})"

    @property
    def full_name(self):
        """Return full name of student."""
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def grade_level(self):
        return self.student_class.grade_level if self.student_class_id else None

    @property
    def academic_year(self):
        """Academic year of the student's class, if enrolled in one."""
        return self.student_class.academic_year if self.student_class_id else None
