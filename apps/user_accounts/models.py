from django.conf import settings
from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models


class UserManager(BaseUserManager):
    """Manager for email-based logins"""
    use_in_migrations = True

    def _create_user(self, email, password, **extra_fields):
        if not email:
            raise ValueError('The email address must be set')
        email = self.normalize_email(email)
        extra_fields.setdefault('username', email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_user(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', False)
        extra_fields.setdefault('is_superuser', False)
        return self._create_user(email, password, **extra_fields)

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('role', User.ROLE_SUPER_ADMIN)
        return self._create_user(email, password, **extra_fields)


class User(AbstractUser):
    """Authenticated actor performing budget mutations"""
    ROLE_USER = 'user'
    ROLE_INSPECTOR = 'inspector'
    ROLE_ADMIN = 'admin'
    ROLE_SUPER_ADMIN = 'super_admin'
    ROLE_CHOICES = [
        (ROLE_USER, 'User'),
        (ROLE_INSPECTOR, 'Inspector'),
        (ROLE_ADMIN, 'Admin'),
        (ROLE_SUPER_ADMIN, 'Super Admin'),
    ]

    email = models.EmailField(unique=True)
    fullname = models.CharField(max_length=255, blank=True)
    department = models.CharField(max_length=255, blank=True)
    position = models.CharField(max_length=255, blank=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_USER)
    created_at = models.DateTimeField(auto_now_add=True)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['username']

    objects = UserManager()

    class Meta:
        ordering = ['email']

    def __str__(self):
        return self.fullname or self.email

    def get_full_name(self):
        return self.fullname or super().get_full_name() or self.email

    def can_run_bulk_actions(self):
        return self.is_superuser or self.role in settings.BULK_ROLES

    def can_purge(self, instance):
        """Only the record's creator or a super-privileged actor may purge it"""
        if self.is_superuser or self.role in settings.PURGE_ROLES:
            return True
        return instance.created_by_id is not None and instance.created_by_id == self.pk

    def can_pin(self):
        return self.is_superuser or self.role in (self.ROLE_ADMIN, self.ROLE_SUPER_ADMIN)
