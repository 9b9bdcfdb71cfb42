from __future__ import annotations

import django_filters

from hm_core.beds.models import Bed, BedStatus, BedType, RoomType
from hm_core.beds.selectors import filter_by_feature


class BedFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(choices=BedStatus.choices)
    bed_type = django_filters.ChoiceFilter(choices=BedType.choices)
    room_type = django_filters.ChoiceFilter(field_name="room__room_type", choices=RoomType.choices)
    department_id = django_filters.UUIDFilter(field_name="room__department_id")
    floor = django_filters.NumberFilter(field_name="room__floor_number")
    room = django_filters.UUIDFilter(field_name="room_id")
    feature = django_filters.CharFilter(method="filter_feature")

    class Meta:
        model = Bed
        fields = ["status", "bed_type", "room_type", "department_id", "floor", "room", "feature"]

    def filter_feature(self, queryset, name, value):
        return filter_by_feature(queryset, value) if value else queryset
