"""
Persistence backends for the quote tracking store

Only the durable part of the store goes through here: tracked entries and the
selected request/vehicle. Each backend stores one JSON document.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional, Protocol

import redis

from ..config import REDIS_URL

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "quote-request-storage"


class StorageBackend(Protocol):
    def load(self) -> Optional[dict]: ...

    def save(self, state: dict) -> None: ...

    def clear(self) -> None: ...


class MemoryStorage:
    """Keeps the serialized document in memory; survives store re-creation, not the process"""

    def __init__(self):
        self._document: Optional[str] = None

    def load(self) -> Optional[dict]:
        return json.loads(self._document) if self._document else None

    def save(self, state: dict) -> None:
        self._document = json.dumps(state)

    def clear(self) -> None:
        self._document = None


class JSONFileStorage:
    """Local JSON file, the desktop/CLI analogue of browser local storage"""

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    def load(self) -> Optional[dict]:
        if not self.path.exists():
            return None
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning(f"⚠️ Ignoring unreadable tracking state at {self.path}: {e}")
            return None

    def save(self, state: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(state), encoding="utf-8")
        tmp_path.replace(self.path)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


def get_redis_client(redis_url: Optional[str] = REDIS_URL) -> redis.Redis:
    """Create a Redis client from REDIS_URL (standard or managed Redis)"""
    if not redis_url:
        raise ValueError("REDIS_URL is not configured")

    masked_url = redis_url.split("@")[-1] if "@" in redis_url else redis_url
    logger.info(f"📡 Using Redis URL connection: ...@{masked_url}")
    return redis.from_url(
        redis_url,
        decode_responses=True,
        socket_connect_timeout=15,
        socket_timeout=30,
        retry_on_timeout=True,
        health_check_interval=30,
    )


class RedisStorage:
    """One JSON document per user/device under a Redis key"""

    def __init__(self, key: str = DEFAULT_STORAGE_KEY, client: Optional[redis.Redis] = None):
        self.key = key
        self.client = client or get_redis_client()

    def load(self) -> Optional[dict]:
        value = self.client.get(self.key)
        return json.loads(value) if value else None

    def save(self, state: dict) -> None:
        self.client.set(self.key, json.dumps(state))

    def clear(self) -> None:
        self.client.delete(self.key)
