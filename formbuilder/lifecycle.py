"""Create, update and delete form definitions together with their tables.

The form row is written in a database transaction. Table DDL, artifact
files and the migration run happen outside of it, so a failure after the
row change is undone with a compensating write instead of a rollback:

* create: the row is removed; artifacts already written stay on disk.
* update: the previous name/definition is restored; columns already renamed
  or added stay as they are.

The ``form_created`` notification is sent before migrations run and is not
retracted when a later step fails.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import QuerySet

from . import artifacts
from .exceptions import GenerationFailed, NotFound, ValidationFailed
from .fields import decode_definition, derive_identifier, extract_field_names
from .migrator import run_pending_migrations
from .models import Form
from .registry import registry
from .schema import sync_table_schema, table_exists
from .signals import form_created, form_deleted, form_updated
from .submissions import count_submissions

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "visibility", "form_builder_json")


def list_forms(owner_id: int) -> QuerySet:
    return Form.objects.filter(user_id=owner_id).order_by("-created_at", "-id")


def owned_form(owner_id: int, form_id: int) -> Form:
    form = Form.objects.filter(user_id=owner_id, pk=form_id).first()
    if form is None:
        raise NotFound("Form not found.")
    return form


def get_form(owner_id: int, form_id: int) -> Form:
    form = owned_form(owner_id, form_id)
    form.submission_count = count_submissions(form)
    return form


def create_form(owner_id: int, definition: Mapping[str, Any]) -> Form:
    """Persist a new form, generate its artifacts and create its table."""

    name = definition["name"]
    identifier = derive_identifier(name)
    logger.info("Name of table: %s", identifier)
    if Form.objects.filter(identifier=identifier).exists():
        raise ValidationFailed(f"A form named '{name}' already exists.")
    descriptors = decode_definition(definition.get("form_builder_json"))

    form = Form(
        user_id=owner_id,
        name=name,
        identifier=identifier,
        visibility=definition.get("visibility") or Form.PUBLIC,
        form_builder_json=descriptors,
    )
    try:
        # tables of deleted forms are left in place and cannot be reused
        if table_exists(identifier):
            raise GenerationFailed(f"Table '{identifier}' already exists")
        with transaction.atomic():
            form.save()
            form_created.send(sender=Form, form=form)
            field_names = extract_field_names(form.field_descriptors())
            artifacts.create_migration_artifact(identifier, field_names)
            artifacts.create_model_artifact(identifier, field_names)
        run_pending_migrations()
    except Exception as exc:
        logger.exception("Failed to create form '%s'", identifier)
        _discard(form)
        raise GenerationFailed("Failed to create the form and table.") from exc

    registry.forget(identifier)
    logger.info("Form %s and table '%s' successfully created", form.pk, identifier)
    return form


def update_form(owner_id: int, form_id: int, definition: Mapping[str, Any]) -> Form:
    """Apply a new definition to an existing form and sync its table."""

    form = owned_form(owner_id, form_id)
    table = form.identifier
    old_fields = form.field_descriptors()
    if "form_builder_json" in definition:
        new_fields = decode_definition(definition["form_builder_json"])
    else:
        new_fields = old_fields
    logger.info("Old JSON for '%s': %s", table, old_fields)
    logger.info("New JSON for '%s': %s", table, new_fields)

    previous = {field: getattr(form, field) for field in UPDATABLE_FIELDS}
    try:
        with transaction.atomic():
            form.name = definition.get("name") or form.name
            form.visibility = definition.get("visibility") or form.visibility
            form.form_builder_json = new_fields
            form.save()

        if settings.FORMBUILDER_EMIT_UPDATE_EVENTS:
            form_updated.send(sender=Form, form=form)

        new_names = extract_field_names(new_fields)
        sync_table_schema(table, extract_field_names(old_fields), new_names)
        artifacts.update_model_artifact(table, new_names)
        registry.forget(table)
        run_pending_migrations()
    except Exception as exc:
        logger.exception("Failed to update form %s ('%s')", form_id, table)
        _restore(form, previous)
        raise GenerationFailed("Failed to update the form and table.") from exc

    logger.info("Form %s and table '%s' successfully updated", form.pk, table)
    return form


def delete_form(owner_id: int, form_id: int) -> Form:
    """Delete the form definition. Its table and model artifact are kept."""

    form = owned_form(owner_id, form_id)
    form.delete()
    form_deleted.send(sender=Form, form=form)
    logger.info("Deleted form '%s'; table '%s' left in place", form.name, form.identifier)
    return form


def _discard(form: Form) -> None:
    if form.pk is None:
        return
    try:
        Form.objects.filter(pk=form.pk).delete()
    except DatabaseError:
        logger.exception("Could not remove form row %s after failed creation", form.pk)


def _restore(form: Form, previous: Dict[str, Any]) -> None:
    for field, value in previous.items():
        setattr(form, field, value)
    try:
        form.save(update_fields=list(previous))
    except DatabaseError:
        logger.exception("Could not restore form %s after failed update", form.pk)
