from django.db import models
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.utils import timezone


class CustomUserManager(BaseUserManager):
    """
    Custom manager for CustomUser model.
    Handles user creation with email as the unique identifier.
    """

    def create_user(self, email, password=None, **extra_fields):
        """
        Create and save a regular user with the given email and password.
        """
        if not email:
            raise ValueError('The Email field must be set')
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)
        extra_fields.setdefault('user_type', 'principal')

        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True.')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True.')

        return self.create_user(email, password, **extra_fields)


class CustomUser(AbstractBaseUser, PermissionsMixin):
    """
    Staff account for the finance office.

    Every payment, savings transaction and scholarship records the user
    that created it, so the account doubles as the audit identity.
    """

    USER_TYPE_CHOICES = [
        ('principal', 'Principal'),
        ('manager', 'Manager'),
        ('accountant', 'Accountant'),
        ('teacher', 'Teacher'),
        ('parent', 'Parent'),
    ]

    # Roles allowed to post tuition payments and savings transactions
    FINANCE_ROLES = ('principal', 'manager', 'accountant')

    # Basic Information
    email = models.EmailField(unique=True, db_index=True)
    full_name = models.CharField(max_length=255)

    # User Type and Status
    user_type = models.CharField(max_length=20, choices=USER_TYPE_CHOICES, default='accountant')
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    date_joined = models.DateTimeField(default=timezone.now)

    objects = CustomUserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['full_name']

    class Meta:
        verbose_name = 'User'
        verbose_name_plural = 'Users'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user_type'], name='accounts_user_type_idx'),
        ]

    def __str__(self):
        return f"{self.full_name} ({self.email})"

    def get_full_name(self):
        return self.full_name

    def get_short_name(self):
        return self.full_name.split()[0] if self.full_name else self.email

    @property
    def can_manage_finance(self):
        return self.is_superuser or self.user_type in self.FINANCE_ROLES
