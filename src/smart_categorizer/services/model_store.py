from __future__ import annotations

import os
import re
from typing import TYPE_CHECKING

from smart_categorizer.core import settings
from smart_categorizer.logger import get_logger

if TYPE_CHECKING:
    from smart_categorizer.manager import CategorizationEngine

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class ModelStore:
    """Keeps exported models on disk, one JSON file per user."""

    def __init__(self, data_dir: str | None = None):
        self.data_dir = data_dir or settings.DATA_DIR
        settings.ensure_dir(self.data_dir)

    def path_for(self, user_id: str) -> str:
        safe_id = _UNSAFE_CHARS.sub("_", user_id)
        return os.path.join(self.data_dir, f"model_{safe_id}.json")

    def exists(self, user_id: str) -> bool:
        return os.path.exists(self.path_for(user_id))

    def save(self, user_id: str, engine: CategorizationEngine) -> str:
        path = self.path_for(user_id)
        with open(path, "w", encoding="utf-8") as f:
            f.write(engine.export_model())
        logger.info("[MODEL] Saved model for user %s to %s", user_id, path)
        return path

    def load(self, user_id: str, engine: CategorizationEngine) -> bool:
        path = self.path_for(user_id)
        if not os.path.exists(path):
            return False
        with open(path, encoding="utf-8") as f:
            data = f.read()
        return engine.import_model(data)

    def delete(self, user_id: str) -> bool:
        path = self.path_for(user_id)
        if not os.path.exists(path):
            return False
        os.remove(path)
        return True
