"""Background maintenance of generated form tables."""
from __future__ import annotations

import logging
from typing import List

from celery import shared_task

from . import artifacts
from .migrator import run_pending_migrations
from .models import Form
from .registry import registry
from .schema import add_missing_columns, table_exists

logger = logging.getLogger(__name__)


@shared_task
def apply_pending_form_migrations() -> List[str]:
    """Apply generated migrations left pending by a failed request."""

    applied = run_pending_migrations()
    logger.info("Applied %d pending form migrations", len(applied))
    return applied


@shared_task
def reconcile_form_schema(form_id: int) -> List[str]:
    """Add columns for current fields missing from the form's table.

    Catches up tables left behind by an update that failed after the form
    row was saved. Never renames or drops columns.
    """

    form = Form.objects.filter(pk=form_id).first()
    if form is None:
        logger.warning("Form %s does not exist", form_id)
        return []
    table = form.identifier
    if not table_exists(table):
        logger.warning("Table '%s' for form %s does not exist", table, form_id)
        return []

    field_names = form.field_names()
    added = add_missing_columns(table, field_names)
    artifacts.update_model_artifact(table, field_names)
    registry.forget(table)
    if added:
        logger.info("Reconciled table '%s': added %s", table, added)
    return added


@shared_task
def reconcile_all_forms() -> int:
    form_ids = list(Form.objects.values_list("id", flat=True))
    for form_id in form_ids:
        reconcile_form_schema.delay(form_id)
    return len(form_ids)
