from __future__ import annotations

from django.contrib import admin

from hm_core.beds.models import Bed, BedStatusLog, Room


class BedInline(admin.TabularInline):
    model = Bed
    extra = 0
    fields = ("bed_number", "bed_type", "status", "features")
    readonly_fields = ("status",)


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ("room_number", "room_type", "floor_number", "max_capacity", "is_operational", "facility_id")
    list_filter = ("room_type", "floor_number", "is_operational", "tenant_id", "facility_id")
    search_fields = ("room_number",)
    ordering = ("floor_number", "room_number")
    inlines = [BedInline]


@admin.register(Bed)
class BedAdmin(admin.ModelAdmin):
    list_display = ("bed_number", "room", "bed_type", "status", "last_cleaned_at", "maintenance_reported_at")
    list_filter = ("status", "bed_type", "tenant_id", "facility_id")
    search_fields = ("bed_number", "room__room_number")
    # Status changes go through BedService so they are logged.
    readonly_fields = ("status", "last_cleaned_at", "maintenance_reported_at", "created_at", "updated_at")
    ordering = ("room__floor_number", "room__room_number", "bed_number")


@admin.register(BedStatusLog)
class BedStatusLogAdmin(admin.ModelAdmin):
    list_display = ("changed_at", "bed", "old_status", "new_status", "changed_by_id", "admission_id")
    list_filter = ("new_status", "tenant_id", "facility_id")
    search_fields = ("bed__bed_number", "change_reason")
    ordering = ("-changed_at",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
