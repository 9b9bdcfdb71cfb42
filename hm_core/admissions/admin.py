from __future__ import annotations

from django.contrib import admin

from hm_core.admissions.models import Admission, AdmissionEvent, BedAssignment, DischargeSyncOutbox


class BedAssignmentInline(admin.TabularInline):
    model = BedAssignment
    extra = 0
    can_delete = False
    fields = ("bed", "assigned_at", "assigned_by_id", "released_at", "released_by_id", "transfer_reason")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Admission)
class AdmissionAdmin(admin.ModelAdmin):
    list_display = ("admission_number", "patient_id", "status", "admission_type", "admission_date", "discharge_date")
    list_filter = ("status", "admission_type", "admission_source", "tenant_id", "facility_id")
    search_fields = ("admission_number", "patient_id")
    readonly_fields = ("admission_number", "status", "length_of_stay_days", "created_at", "updated_at")
    ordering = ("-admission_date",)
    inlines = [BedAssignmentInline]


@admin.register(AdmissionEvent)
class AdmissionEventAdmin(admin.ModelAdmin):
    list_display = ("timestamp", "admission_id", "code", "title", "actor_user_id")
    list_filter = ("code", "tenant_id", "facility_id")
    search_fields = ("admission_id", "code", "title")
    ordering = ("-timestamp",)

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(DischargeSyncOutbox)
class DischargeSyncOutboxAdmin(admin.ModelAdmin):
    list_display = ("admission", "status", "attempts", "last_attempt_at", "delivered_at")
    list_filter = ("status",)
    readonly_fields = ("payload", "attempts", "last_error", "last_attempt_at", "delivered_at")
    ordering = ("-created_at",)
