# backend/hm_core/common/models.py
from __future__ import annotations

import uuid

from django.core.exceptions import ValidationError
from django.db import models


class TimeStampedModel(models.Model):
    """
    Standard timestamps for all entities.
    """
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class ScopedModel(TimeStampedModel):
    """
    Enforces tenant + facility scope at the data layer.
    Every query in services/selectors filters on both columns.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant_id = models.UUIDField(db_index=True)
    facility_id = models.UUIDField(db_index=True)

    class Meta:
        abstract = True


class AppendOnlyQuerySet(models.QuerySet):
    """
    Blocks bulk UPDATE/DELETE on history tables.
    Row-level save()/delete() guards live on the models themselves.
    """

    def update(self, **kwargs):
        raise ValidationError(f"{self.model.__name__} is append-only and cannot be updated.")

    def delete(self):
        raise ValidationError(f"{self.model.__name__} is append-only and cannot be deleted.")


class AppendOnlyModel(models.Model):
    """
    Base for immutable history rows (bed status log, admission timeline).
    """
    objects = AppendOnlyQuerySet.as_manager()

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        # UUID PK exists even before first save, so use _state.adding
        if not self._state.adding:
            raise ValidationError(f"{type(self).__name__} is immutable and cannot be modified once created.")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(f"{type(self).__name__} is immutable and cannot be deleted.")
