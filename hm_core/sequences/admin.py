from __future__ import annotations

from django.contrib import admin

from hm_core.sequences.models import IdSequence


@admin.register(IdSequence)
class IdSequenceAdmin(admin.ModelAdmin):
    list_display = ("sequence_type", "prefix", "year", "current_value", "padding_length", "reset_yearly", "facility_id")
    list_filter = ("sequence_type", "reset_yearly", "tenant_id", "facility_id")
    search_fields = ("sequence_type", "prefix")
    # Counters only move through SequenceService.
    readonly_fields = ("current_value", "year", "last_issued_at", "created_at", "updated_at")
    ordering = ("sequence_type",)
