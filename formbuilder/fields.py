"""Field-name extraction and the naming rules derived from form names."""
from __future__ import annotations

import json
import re
from typing import Any, Iterable, List, Mapping, Sequence

from .exceptions import ValidationFailed

RESERVED_COLUMNS = ("id", "created_at", "updated_at")

_LOWER_WORD = re.compile(r"[a-z]+")
_BEFORE_CAPITAL = re.compile(r"(.)(?=[A-Z])")
_NOT_IDENTIFIER = re.compile(r"[^a-z0-9_]")
_SEPARATORS = re.compile(r"[-_\s]+")


def extract_field_names(descriptors: Iterable[Any]) -> List[str]:
    """Return the ``name`` of every descriptor that has one, in order.

    Descriptors without a non-empty name (or that are not mappings at all)
    are skipped silently.
    """

    names: List[str] = []
    for descriptor in descriptors or []:
        if not isinstance(descriptor, Mapping):
            continue
        name = descriptor.get("name")
        if name:
            names.append(str(name))
    return names


def without_reserved(names: Sequence[str]) -> List[str]:
    return [name for name in names if name not in RESERVED_COLUMNS]


def decode_definition(raw: Any) -> List[Any]:
    """Decode ``form_builder_json`` into a list of field descriptors."""

    if raw is None or raw == "":
        return []
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise ValidationFailed("form_builder_json must be valid JSON.") from exc
    if not isinstance(raw, list):
        raise ValidationFailed("form_builder_json must be a list of fields.")
    return raw


def snake_case(value: str) -> str:
    """Snake-case a display name: ``"Customer Feedback"`` -> ``customer_feedback``."""

    if _LOWER_WORD.fullmatch(value):
        return value
    collapsed = "".join(word[:1].upper() + word[1:] for word in value.split())
    return _BEFORE_CAPITAL.sub(r"\1_", collapsed).lower()


def derive_identifier(name: str) -> str:
    """Derive the immutable form identifier (also the generated table name)."""

    base = _NOT_IDENTIFIER.sub("", snake_case(name.strip()))
    if not base:
        raise ValidationFailed("The form name must contain letters or digits.")
    return f"{base}s"


def model_name_for_table(table: str) -> str:
    """``customer_feedbacks`` -> ``CustomerFeedback``."""

    singular = table[:-1] if table.endswith("s") else table
    parts = [part for part in _SEPARATORS.split(singular) if part]
    return "".join(part[:1].upper() + part[1:] for part in parts)
