"""Applies generated migration documents to the live database."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from django.db import DatabaseError

from . import artifacts
from .exceptions import GenerationFailed
from .models import AppliedMigration
from .schema import create_table, table_exists

logger = logging.getLogger(__name__)


class MigrationRunner:
    """Runs every migration document not yet recorded in the ledger.

    Documents are applied in filename order, which is chronological because
    names start with a timestamp.
    """

    def __init__(self, directory: Optional[Path] = None) -> None:
        self.directory = directory

    def _directory(self) -> Path:
        return self.directory or artifacts.migrations_dir()

    def pending(self) -> List[Path]:
        directory = self._directory()
        if not directory.is_dir():
            return []
        applied = set(AppliedMigration.objects.values_list("name", flat=True))
        return [path for path in sorted(directory.glob("*.json")) if path.stem not in applied]

    def run(self) -> List[str]:
        applied: List[str] = []
        for path in self.pending():
            document = self._load(path)
            self._apply(document)
            AppliedMigration.objects.create(name=path.stem, table_name=document["table"])
            logger.info("Applied migration %s", path.stem)
            applied.append(path.stem)
        return applied

    def _load(self, path: Path) -> Dict[str, Any]:
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise GenerationFailed(f"Unreadable migration artifact: {path}") from exc
        if document.get("operation") != artifacts.CREATE_TABLE or not document.get("table"):
            raise GenerationFailed(f"Unsupported migration artifact: {path}")
        return document

    def _apply(self, document: Dict[str, Any]) -> None:
        table = document["table"]
        if table_exists(table):
            logger.error("Table '%s' already exists; %s not applied", table, document["name"])
            raise GenerationFailed(f"Table '{table}' already exists")
        try:
            create_table(table, document.get("columns", []))
        except DatabaseError as exc:
            raise GenerationFailed(f"Migration {document['name']} failed") from exc


def run_pending_migrations() -> List[str]:
    """Apply all pending generated migrations; return the names applied."""

    return MigrationRunner().run()
