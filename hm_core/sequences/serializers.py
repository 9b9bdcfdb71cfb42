from __future__ import annotations

from rest_framework import serializers

from hm_core.sequences.models import IdSequence


class IdSequenceSerializer(serializers.ModelSerializer):
    class Meta:
        model = IdSequence
        fields = [
            "id",
            "sequence_type",
            "prefix",
            "padding_length",
            "current_value",
            "year",
            "reset_yearly",
            "last_issued_at",
        ]
        read_only_fields = fields


class IssuedIdentifierSerializer(serializers.Serializer):
    sequence_type = serializers.CharField()
    value = serializers.CharField()
