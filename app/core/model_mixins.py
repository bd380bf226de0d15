"""
Model mixins providing reusable functionality for Django models.

Available Mixins:
    UUIDPrimaryKeyMixin: Use UUID as primary key

Usage:
    from core.models import BaseModel
    from core.model_mixins import UUIDPrimaryKeyMixin

    class UploadSession(UUIDPrimaryKeyMixin, BaseModel):
        filename = models.CharField(max_length=255)

Note:
    - Always list mixins before BaseModel in inheritance
    - Mixins are abstract and don't create database tables
"""

from __future__ import annotations

import uuid

from django.db import models


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use UUID as primary key instead of auto-increment integer.

    Benefits:
        - Non-guessable IDs
        - Can be generated before database insert, so a session id can
          name its chunk directory and governor slot up front

    Fields:
        id: UUIDField as primary key (auto-generated)

    Usage:
        # ID is automatically generated
        session = UploadSession.objects.create(filename="clip.mp4", ...)

        # Can also provide your own UUID
        session = UploadSession.objects.create(id=uuid.uuid4(), ...)
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True
