"""Public form rendering and the rows submitted into generated tables."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Tuple, Type

from django.db import DatabaseError, models, transaction
from django.db.models import QuerySet

from .exceptions import Forbidden, ModelUnresolved, NotFound, SubmissionFailed
from .models import Form
from .registry import registry
from .schema import data_columns

logger = logging.getLogger(__name__)


def form_by_identifier(identifier: str) -> Form:
    form = Form.objects.filter(identifier=identifier).first()
    if form is None:
        raise NotFound("Form not found.")
    return form


def render_form(identifier: str) -> Form:
    return form_by_identifier(identifier)


def form_feedback(identifier: str) -> Form:
    return form_by_identifier(identifier)


def _cell(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return ", ".join(str(item) for item in value)
    return str(value)


def submit_form(identifier: str, values: Mapping[str, Any]) -> models.Model:
    """Store one submission in the form's table.

    Keys that are not fields of the form are ignored.
    """

    logger.info("Starting submission for '%s'", identifier)
    form = form_by_identifier(identifier)
    model = registry.resolve(form.identifier)
    fillable = set(data_columns(model))

    try:
        with transaction.atomic():
            row = model()
            for key, value in values.items():
                if key in fillable:
                    setattr(row, key, _cell(value))
            row.save()
    except DatabaseError as exc:
        logger.exception("Error occurred during form submission for '%s'", identifier)
        raise SubmissionFailed() from exc

    logger.info("Data saved successfully to table '%s'", form.identifier)
    return row


def count_submissions(form: Form) -> int:
    try:
        return registry.resolve(form.identifier).objects.count()
    except (ModelUnresolved, DatabaseError):
        logger.warning("Could not count submissions for '%s'", form.identifier)
        return 0


def _authorized(owner_id: int, form_id: int) -> Tuple[Form, Type[models.Model]]:
    form = Form.objects.filter(pk=form_id).first()
    if form is None:
        raise NotFound("Form not found.")
    if form.user_id != owner_id:
        raise Forbidden()
    return form, registry.resolve(form.identifier)


def list_submissions(owner_id: int, form_id: int) -> Tuple[Form, QuerySet]:
    form, model = _authorized(owner_id, form_id)
    return form, model.objects.order_by("-created_at", "-id")


def show_submission(owner_id: int, form_id: int, submission_id: int) -> Tuple[Form, models.Model, List[Dict[str, Any]]]:
    form, model = _authorized(owner_id, form_id)
    row = model.objects.filter(pk=submission_id).first()
    if row is None:
        raise NotFound("Submission not found.")
    return form, row, form.entries_header()


def delete_submission(owner_id: int, form_id: int, submission_id: int) -> None:
    form, model = _authorized(owner_id, form_id)
    row = model.objects.filter(pk=submission_id).first()
    if row is None:
        raise NotFound("Submission not found.")
    row.delete()
    logger.info("Deleted submission %s from '%s'", submission_id, form.identifier)
