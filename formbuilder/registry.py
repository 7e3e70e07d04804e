"""Registry of the row mappers bound to generated form tables."""
from __future__ import annotations

import logging
import threading
from typing import Dict, Sequence, Tuple, Type

from django.db import models

from .artifacts import load_model_artifact
from .exceptions import ModelUnresolved
from .schema import build_table_model

logger = logging.getLogger(__name__)


class ModelRegistry:
    """Maps a form identifier to the model class for its generated table.

    Entries are filled when a model artifact is written and lazily from the
    artifact on disk otherwise, so a fresh worker process resolves the same
    models as the one that created them.
    """

    def __init__(self) -> None:
        self._models: Dict[str, Tuple[Tuple[str, ...], Type[models.Model]]] = {}
        self._lock = threading.Lock()

    def register(self, identifier: str, fillable: Sequence[str], model_name: str = "") -> Type[models.Model]:
        key = tuple(fillable)
        with self._lock:
            cached = self._models.get(identifier)
            if cached is not None and cached[0] == key:
                return cached[1]
            model = build_table_model(identifier, key, model_name or None)
            self._models[identifier] = (key, model)
        logger.debug("Registered model %s for '%s'", model.__name__, identifier)
        return model

    def resolve(self, identifier: str) -> Type[models.Model]:
        document = load_model_artifact(identifier)
        if document is None:
            logger.error("No model artifact registered for '%s'", identifier)
            raise ModelUnresolved()
        return self.register(identifier, document.get("fillable", []), document.get("model", ""))

    def forget(self, identifier: str) -> None:
        with self._lock:
            self._models.pop(identifier, None)

    def clear(self) -> None:
        with self._lock:
            self._models.clear()


registry = ModelRegistry()
