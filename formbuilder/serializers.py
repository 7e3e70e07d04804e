"""Serializers for the form builder service."""
from __future__ import annotations

from typing import Any, Dict

from rest_framework import serializers

from .exceptions import ValidationFailed
from .fields import decode_definition
from .models import Form


class FormSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Form
        fields = [
            "id",
            "name",
            "identifier",
            "visibility",
            "created_at",
            "updated_at",
        ]


class FormSerializer(serializers.ModelSerializer):
    user = serializers.PrimaryKeyRelatedField(read_only=True)
    form_builder_json = serializers.SerializerMethodField()

    class Meta:
        model = Form
        fields = [
            "id",
            "user",
            "name",
            "identifier",
            "visibility",
            "form_builder_json",
            "created_at",
            "updated_at",
        ]

    def get_form_builder_json(self, form: Form):
        return form.field_descriptors()


class FormDetailSerializer(FormSerializer):
    submission_count = serializers.IntegerField(read_only=True)
    entries_header = serializers.SerializerMethodField()

    class Meta(FormSerializer.Meta):
        fields = FormSerializer.Meta.fields + ["submission_count", "entries_header"]

    def get_entries_header(self, form: Form):
        return form.entries_header()


class SaveFormSerializer(serializers.Serializer):
    """Validates the payload posted by the form builder UI."""

    name = serializers.CharField(max_length=100)
    form_builder_json = serializers.JSONField()
    visibility = serializers.ChoiceField(choices=Form.VISIBILITY_CHOICES, required=False)

    def validate_form_builder_json(self, value: Any):
        try:
            return decode_definition(value)
        except ValidationFailed as exc:
            raise serializers.ValidationError(exc.detail) from exc


class SubmissionSerializer(serializers.BaseSerializer):
    """Renders a row of a generated table as a flat mapping."""

    def to_representation(self, instance) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for field in instance._meta.concrete_fields:
            value = getattr(instance, field.attname)
            if hasattr(value, "isoformat"):
                value = value.isoformat()
            data[field.name] = value
        return data
