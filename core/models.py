"""
Core — Base Models & Audit Infrastructure

Reusable abstract models for timestamps and UUID identity, plus the
AuditLog model recording configuration changes that do not go through
the stock ledger (thresholds, activation).

@file core/models.py
"""

import uuid

from django.db import models
from django.utils.translation import gettext_lazy as _


# ---------------------------------------------------------------------------
# Abstract base models (mixins)
# ---------------------------------------------------------------------------

class TimestampMixin(models.Model):
    """Adds created_at / updated_at to any model."""

    created_at = models.DateTimeField(
        _('created at'), auto_now_add=True, db_index=True,
    )
    updated_at = models.DateTimeField(
        _('updated at'), auto_now=True,
    )

    class Meta:
        abstract = True


class BaseModel(TimestampMixin):
    """
    Standard base for BranchStock models.
    UUID PK + timestamps.
    """

    id = models.UUIDField(
        primary_key=True, default=uuid.uuid4, editable=False,
    )

    class Meta:
        abstract = True


# ---------------------------------------------------------------------------
# Audit Log: immutable record of configuration writes
# ---------------------------------------------------------------------------

class AuditLog(models.Model):
    """
    Immutable audit trail for writes outside the stock ledger.

    actor_id is free-form: a user primary key or the name of a system
    process. Old and new values are stored as JSON for diffing.
    """

    class ActionChoices(models.TextChoices):
        CREATE = 'CREATE', _('Create')
        UPDATE = 'UPDATE', _('Update')
        STATUS_CHANGE = 'STATUS_CHANGE', _('Status Change')

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    actor_id = models.CharField(_('actor'), max_length=100, blank=True, db_index=True)
    action = models.CharField(
        _('action'), max_length=20,
        choices=ActionChoices.choices, db_index=True,
    )
    model_name = models.CharField(_('model'), max_length=100, db_index=True)
    object_id = models.CharField(_('object ID'), max_length=40, db_index=True)

    old_values = models.JSONField(_('old values'), null=True, blank=True)
    new_values = models.JSONField(_('new values'), null=True, blank=True)

    timestamp = models.DateTimeField(_('timestamp'), auto_now_add=True, db_index=True)

    class Meta:
        verbose_name = _('audit log')
        verbose_name_plural = _('audit logs')
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['model_name', 'object_id'], name='audit_model_object_idx'),
            models.Index(fields=['action', 'timestamp'], name='audit_action_ts_idx'),
        ]

    def __str__(self):
        return f'{self.action} {self.model_name}:{self.object_id} by {self.actor_id or "system"}'
