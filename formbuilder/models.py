"""Database models for the form builder service."""
from __future__ import annotations

from typing import Any, Dict, List

from django.conf import settings
from django.db import models

from .fields import decode_definition, extract_field_names


class Form(models.Model):
    """A form definition designed in the builder.

    ``identifier`` doubles as the name of the table holding the form's
    submissions and never changes after creation.
    """

    PUBLIC = "public"
    PRIVATE = "private"

    VISIBILITY_CHOICES = [
        (PUBLIC, "Public"),
        (PRIVATE, "Private"),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, related_name="forms", on_delete=models.CASCADE
    )
    name = models.CharField(max_length=100)
    identifier = models.CharField(max_length=255, unique=True, editable=False)
    visibility = models.CharField(max_length=16, choices=VISIBILITY_CHOICES, default=PUBLIC)
    form_builder_json = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:
        return f"{self.name} ({self.identifier})"

    @property
    def table_name(self) -> str:
        return self.identifier

    def field_descriptors(self) -> List[Any]:
        return decode_definition(self.form_builder_json)

    def field_names(self) -> List[str]:
        return extract_field_names(self.field_descriptors())

    def entries_header(self) -> List[Dict[str, Any]]:
        """Named fields with the label and type shown above submitted entries."""

        header = []
        for descriptor in self.field_descriptors():
            if not isinstance(descriptor, dict) or not descriptor.get("name"):
                continue
            name = str(descriptor["name"])
            header.append(
                {
                    "name": name,
                    "label": descriptor.get("label") or name.replace("_", " ").title(),
                    "type": descriptor.get("type"),
                }
            )
        return header


class AppliedMigration(models.Model):
    """Ledger of generated migration documents already applied to the database."""

    name = models.CharField(max_length=255, unique=True)
    table_name = models.CharField(max_length=255)
    applied_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name
