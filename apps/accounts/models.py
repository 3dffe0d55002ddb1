"""
Internal user profile carrying the role used by permission checks.
Authentication itself is delegated to django.contrib.auth.
"""
from django.conf import settings
from django.db import models
from apps.core.models import TimestampedModel


class Role(models.TextChoices):
    ADMIN  = 'admin',  'Admin'
    SALES  = 'sales',  'Sales'
    EDITOR = 'editor', 'Editor'
    ERE    = 'ere',    'ERE'


class UserProfile(TimestampedModel):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='profile',
    )
    role = models.CharField(max_length=10, choices=Role.choices, default=Role.SALES)

    class Meta:
        verbose_name = 'User Profile'
        verbose_name_plural = 'User Profiles'

    def __str__(self):
        return f"{self.user} [{self.role}]"
