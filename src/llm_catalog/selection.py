"""Persist the user's last (provider, model) choice across sessions."""

from __future__ import annotations

import json
import logging
from typing import Optional

from llm_catalog.cache import KeyValueStorage, open_storage
from llm_catalog.config import SELECTED_MODEL_KEY
from llm_catalog.models import SelectedModel

logger = logging.getLogger(__name__)


class SelectionMemory:
    """Key-value persistence for the selected model; unreadable data reads as ``None``."""

    def __init__(self, storage: Optional[KeyValueStorage] = None) -> None:
        self._storage = storage if storage is not None else open_storage()

    def get_selected_model(self) -> Optional[SelectedModel]:
        try:
            raw = self._storage.get(SELECTED_MODEL_KEY)
            if raw is None:
                return None
            return SelectedModel.from_dict(json.loads(raw))
        except Exception as exc:
            logger.debug("Ignoring unreadable selected model: %s", exc)
            return None

    def set_selected_model(self, model_provider: str, model_id: str) -> None:
        selected = SelectedModel(model_provider=model_provider, model_id=model_id)
        try:
            self._storage.set(SELECTED_MODEL_KEY, json.dumps(selected.to_dict()))
            logger.debug("Saved selected model %s/%s", model_provider, model_id)
        except Exception as exc:
            logger.error("Error saving selected model: %s", exc)
