from decimal import Decimal
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.db import models
from django.utils import timezone
import uuid


class UserRole(models.TextChoices):
    CHILD = 'child', 'Child'
    CLERK = 'clerk', 'Clerk'
    ADMIN = 'admin', 'Admin'


class UserManager(BaseUserManager):
    """Custom user manager for email-based operators and email-less children."""

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('Email is required')

        email = self.normalize_email(email)
        extra_fields.setdefault('role', UserRole.ADMIN)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)

        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True')

        return self.create_user(email, password, **extra_fields)

    def create_child(self, name, institution, balance=Decimal('0.00'), **extra_fields):
        """Create a café customer. Children never log in."""
        user = self.model(
            name=name,
            institution=institution,
            balance=balance,
            role=UserRole.CHILD,
            **extra_fields
        )
        user.set_unusable_password()
        user.save(using=self._db)
        return user


class User(AbstractBaseUser, PermissionsMixin):
    """Café user: a child customer or an operator (admin/clerk)."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True, max_length=255, null=True, blank=True)
    name = models.CharField(max_length=100, blank=True)
    number = models.CharField(max_length=20, blank=True)

    institution = models.ForeignKey(
        'institutions.Institution',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='users'
    )
    role = models.CharField(max_length=10, choices=UserRole.choices, default=UserRole.CHILD)
    is_test_user = models.BooleanField(default=False)

    # Ledger-of-record balance, only written by the ledger service
    balance = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    daily_spend_limit = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)

    # Permissions
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)

    # Timestamps
    created_at = models.DateTimeField(default=timezone.now)
    last_login = models.DateTimeField(null=True, blank=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    class Meta:
        db_table = 'users'
        indexes = [
            models.Index(fields=['institution', 'role'], name='users_institution_role_idx'),
            models.Index(fields=['created_at'], name='users_created_at_idx'),
        ]

    def __str__(self):
        return self.name or self.email or str(self.id)

    def get_display_name(self):
        """Return name or email prefix."""
        if self.name:
            return self.name
        return self.email.split('@')[0] if self.email else ''

    @property
    def is_operator(self):
        return self.role in (UserRole.ADMIN, UserRole.CLERK)
