"""Generated artifacts for form tables.

Two kinds of documents are written under ``FORMBUILDER_ARTIFACT_ROOT``:

* ``migrations/<timestamp>_create_<table>_table.json`` describes the initial
  shape of a generated table. The migration runner applies pending ones.
* ``models/<ModelName>.json`` is the metadata record binding a model name to
  its table and fillable fields. The model registry builds row mappers from
  it.

Both are plain files outside the database transaction: once written they stay
on disk even if the surrounding operation is rolled back.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from django.conf import settings
from django.utils import timezone

from .exceptions import GenerationFailed
from .fields import model_name_for_table, without_reserved

logger = logging.getLogger(__name__)

CREATE_TABLE = "create_table"


def artifact_root() -> Path:
    return Path(settings.FORMBUILDER_ARTIFACT_ROOT)


def migrations_dir() -> Path:
    return artifact_root() / "migrations"


def models_dir() -> Path:
    return artifact_root() / "models"


def model_artifact_path(table: str) -> Path:
    return models_dir() / f"{model_name_for_table(table)}.json"


def _write(path: Path, document: Dict[str, Any]) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(document, indent=2), encoding="utf-8")
    except OSError as exc:
        raise GenerationFailed(f"Failed to write artifact: {path}") from exc


def create_migration_artifact(table: str, field_names: Sequence[str]) -> Path:
    """Write the migration that creates ``table`` and return its path."""

    name = f"{timezone.now():%Y_%m_%d_%H%M%S}_create_{table}_table"
    path = migrations_dir() / f"{name}.json"
    if path.exists():
        raise GenerationFailed(f"Migration artifact already exists: {path}")
    _write(
        path,
        {
            "name": name,
            "operation": CREATE_TABLE,
            "table": table,
            "columns": without_reserved(field_names),
        },
    )
    logger.info("Wrote migration artifact %s", path)
    return path


def _model_document(table: str, field_names: Sequence[str]) -> Dict[str, Any]:
    return {
        "model": model_name_for_table(table),
        "table": table,
        "fillable": list(field_names),
    }


def create_model_artifact(table: str, field_names: Sequence[str]) -> Path:
    """Write the model record for ``table`` unless one already exists."""

    path = model_artifact_path(table)
    if path.exists():
        logger.info("Model artifact %s already exists; left untouched", path)
        return path
    _write(path, _model_document(table, field_names))
    logger.info("Wrote model artifact %s", path)
    return path


def update_model_artifact(table: str, field_names: Sequence[str]) -> Path:
    """Overwrite the model record for ``table`` with the current field list."""

    path = model_artifact_path(table)
    _write(path, _model_document(table, field_names))
    logger.info("Rewrote model artifact %s", path)
    return path


def load_model_artifact(table: str) -> Optional[Dict[str, Any]]:
    path = model_artifact_path(table)
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValueError):
        logger.exception("Unreadable model artifact %s", path)
        return None
