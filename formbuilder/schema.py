"""Live schema of generated form tables.

Generated tables have no model module of their own. ``build_table_model``
produces a throwaway Django model for a table from a list of column names,
registered in a private app registry so it never clashes with the project's
models; the schema editor and the ORM then work on it like any other model.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Type

from django.apps.registry import Apps
from django.core.exceptions import FieldDoesNotExist
from django.db import DatabaseError, connection, models

from .exceptions import SchemaSyncFailed
from .fields import RESERVED_COLUMNS, model_name_for_table, without_reserved

logger = logging.getLogger(__name__)

APP_LABEL = "formbuilder"
TEXT_MAX_LENGTH = 255


def text_column() -> models.CharField:
    """Every form field is stored as a nullable string column."""

    return models.CharField(max_length=TEXT_MAX_LENGTH, null=True, blank=True)


def storable(name: str) -> bool:
    return not hasattr(models.Model, name)


def _stored(names: Sequence[str]) -> List[str]:
    return [name for name in without_reserved(names) if storable(name)]


def build_table_model(
    table: str, columns: Sequence[str], model_name: Optional[str] = None
) -> Type[models.Model]:
    """Return a model class bound to ``table`` with one text field per column."""

    meta = type(
        "Meta",
        (),
        {
            "apps": Apps(),
            "app_label": APP_LABEL,
            "db_table": table,
            "ordering": ["-created_at", "-id"],
        },
    )
    attrs = {
        "__module__": __name__,
        "Meta": meta,
        "id": models.BigAutoField(primary_key=True),
    }
    for name in without_reserved(columns):
        if not storable(name):
            logger.warning("Column '%s' in table '%s' shadows a model attribute; skipped", name, table)
            continue
        attrs[name] = text_column()
    attrs["created_at"] = models.DateTimeField(auto_now_add=True, null=True)
    attrs["updated_at"] = models.DateTimeField(auto_now=True, null=True)
    return type(model_name or model_name_for_table(table), (models.Model,), attrs)


def data_columns(model: Type[models.Model]) -> List[str]:
    return [
        field.name
        for field in model._meta.concrete_fields
        if field.name not in RESERVED_COLUMNS
    ]


def table_exists(table: str) -> bool:
    return table in connection.introspection.table_names()


def live_columns(table: str) -> List[str]:
    """Data columns currently present on ``table``, in table order."""

    with connection.cursor() as cursor:
        description = connection.introspection.get_table_description(cursor, table)
    return [column.name for column in description if column.name not in RESERVED_COLUMNS]


def create_table(table: str, columns: Sequence[str]) -> None:
    model = build_table_model(table, columns)
    with connection.schema_editor() as editor:
        editor.create_model(model)
    logger.info("Created table '%s' with columns %s", table, data_columns(model))


def sync_table_schema(table: str, old_names: Sequence[str], new_names: Sequence[str]) -> None:
    """Bring ``table`` in line with a changed field list.

    Columns are matched by position: where the old and new name at the same
    index differ the column is renamed, names beyond the end of the old list
    are added. Columns are never dropped.
    """

    old = _stored(old_names)
    new = _stored(new_names)
    try:
        columns = live_columns(table)
        with connection.schema_editor() as editor:
            for index in range(min(len(old), len(new))):
                if old[index] == new[index]:
                    continue
                renamed = [new[index] if column == old[index] else column for column in columns]
                from_model = build_table_model(table, columns)
                to_model = build_table_model(table, renamed)
                editor.alter_field(
                    from_model,
                    from_model._meta.get_field(old[index]),
                    to_model._meta.get_field(new[index]),
                )
                columns = renamed
                logger.info("Renamed column '%s' to '%s' in table '%s'", old[index], new[index], table)

            for name in new[len(old):]:
                columns = columns + [name]
                to_model = build_table_model(table, columns)
                editor.add_field(to_model, to_model._meta.get_field(name))
                logger.info("Added new column '%s' in table '%s'", name, table)
    except (DatabaseError, FieldDoesNotExist) as exc:
        raise SchemaSyncFailed() from exc


def add_missing_columns(table: str, names: Sequence[str]) -> List[str]:
    """Add a text column for every name not yet on ``table``; return the added names."""

    columns = live_columns(table)
    added: List[str] = []
    try:
        with connection.schema_editor() as editor:
            for name in without_reserved(names):
                if name in columns or not storable(name):
                    continue
                columns = columns + [name]
                to_model = build_table_model(table, columns)
                editor.add_field(to_model, to_model._meta.get_field(name))
                added.append(name)
    except (DatabaseError, FieldDoesNotExist) as exc:
        raise SchemaSyncFailed() from exc
    return added
