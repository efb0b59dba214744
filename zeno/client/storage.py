"""
PERSISTENCE BACKENDS
====================

  LocalSnapshotStorage    - one JSON file per storage key (DATA_DIR/<key>.json);
                            the local source of truth, written after every mutation.
  RemoteConversationStore - interface of the optional remote document store the
                            conversations are mirrored to when a user is signed
                            in. The store itself is an external service.

The file layout matches what the browser client persists:
  {"state": {"conversations": [...], "currentConversationId": ..., ...}, "version": 0}
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import config

logger = logging.getLogger("Zeno")

SNAPSHOT_VERSION = 0


class SnapshotStorage(Protocol):
    def load(self) -> Optional[Dict[str, Any]]: ...

    def save(self, state: Dict[str, Any]) -> None: ...


class RemoteConversationStore(Protocol):
    async def save_conversation(self, user_id: str, conversation_id: str, data: Dict[str, Any]) -> None: ...

    async def delete_conversation(self, user_id: str, conversation_id: str) -> None: ...

    async def list_conversations(self, user_id: str) -> List[Dict[str, Any]]: ...


class LocalSnapshotStorage:

    def __init__(self, key: str = config.STORAGE_KEY, directory: Path = config.DATA_DIR):
        self.path = Path(directory) / f"{key}.json"

    def load(self) -> Optional[Dict[str, Any]]:
        """The stored state, or None if nothing was saved yet or the file is unreadable."""
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read snapshot %s: %s", self.path, e)
            return None
        if not isinstance(data, dict) or not isinstance(data.get("state"), dict):
            logger.warning("Ignoring snapshot %s with unexpected layout", self.path)
            return None
        return data["state"]

    def save(self, state: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump({"state": state, "version": SNAPSHOT_VERSION}, f, ensure_ascii=False)
        os.replace(tmp_path, self.path)
