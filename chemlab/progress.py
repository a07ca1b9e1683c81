from __future__ import annotations
from typing import Any, List, Optional
import json
import os
import logging

from .constants import DEFAULT_DATA_DIR, DEFAULT_PROGRESS_FILENAME

logger = logging.getLogger(__name__)

MODULE_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.dirname(MODULE_DIR)
DEFAULT_PROGRESS_PATH = os.path.join(PROJECT_ROOT, DEFAULT_DATA_DIR, DEFAULT_PROGRESS_FILENAME)


# -----------------------
# Utilities
# -----------------------
def safe_load_json(path: str) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError:
        return None
    except Exception:
        logger.exception("safe_load_json failed for %s", path)
        return None


def safe_save_json(obj: Any, path: str) -> bool:
    try:
        if os.path.dirname(path):
            os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(obj, fh, indent=2, ensure_ascii=False)
        return True
    except Exception:
        logger.exception("safe_save_json failed for %s", path)
        return False


# -----------------------
# Completion store
# -----------------------
class JsonCompletionStore:
    """
    Persisted set of completed experiment ids, stored as a JSON list.

    A missing or malformed file starts an empty set. With path=None the store
    lives only in memory. Any object with contains/add/ids can stand in.
    """

    def __init__(self, path: Optional[str] = DEFAULT_PROGRESS_PATH):
        self.path = path
        self._ids: List[str] = []
        self.load()

    def load(self) -> List[str]:
        self._ids = []
        if self.path is None:
            return self.ids()
        raw = safe_load_json(self.path)
        if raw is None:
            logger.info(f"No completion file at {self.path}; starting empty")
            return self.ids()
        if not isinstance(raw, list):
            logger.warning(f"Completion file {self.path} is not a JSON list; starting empty")
            return self.ids()
        for item in raw:
            if isinstance(item, str) and item not in self._ids:
                self._ids.append(item)
        logger.info(f"Loaded {len(self._ids)} completed experiments from {self.path}")
        return self.ids()

    def contains(self, experiment_id: str) -> bool:
        return experiment_id in self._ids

    def add(self, experiment_id: str) -> bool:
        """Insert an id; returns False when it was already present."""
        if experiment_id in self._ids:
            return False
        self._ids.append(experiment_id)
        if self.path is not None:
            safe_save_json(self._ids, self.path)
        return True

    def ids(self) -> List[str]:
        return list(self._ids)

    def __len__(self) -> int:
        return len(self._ids)
