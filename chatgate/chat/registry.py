from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from chatgate.chat.session import ChatSessionController

_DEFAULT_TTL_SECONDS = 6 * 60 * 60


def ttl_seconds() -> int:
    raw = (os.getenv("CHAT_SESSION_TTL_SECONDS") or "").strip()
    if not raw:
        return _DEFAULT_TTL_SECONDS
    try:
        value = int(raw)
    except ValueError:
        return _DEFAULT_TTL_SECONDS
    return value if value >= 60 else _DEFAULT_TTL_SECONDS


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _Entry:
    controller: ChatSessionController
    touched_at: datetime


class ChatSessionRegistry:
    """
    In-memory chat sessions keyed by user id. Nothing is persisted.

    Idle sessions are evicted after CHAT_SESSION_TTL_SECONDS; a session that is mid
    round trip is never evicted.
    """

    def __init__(self, factory: Optional[Callable[[], ChatSessionController]] = None) -> None:
        self._factory = factory or ChatSessionController
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def _evict_expired_locked(self) -> None:
        cutoff = _now() - timedelta(seconds=ttl_seconds())
        expired: List[str] = [
            key
            for key, entry in self._entries.items()
            if entry.touched_at < cutoff and entry.controller.state == "idle"
        ]
        for key in expired:
            self._entries.pop(key, None)

    def get_or_create(self, user_id: str) -> ChatSessionController:
        with self._lock:
            self._evict_expired_locked()
            entry = self._entries.get(user_id)
            if entry is None:
                entry = _Entry(controller=self._factory(), touched_at=_now())
                self._entries[user_id] = entry
            else:
                entry.touched_at = _now()
            return entry.controller

    def get(self, user_id: str) -> Optional[ChatSessionController]:
        with self._lock:
            self._evict_expired_locked()
            entry = self._entries.get(user_id)
            return entry.controller if entry is not None else None

    def discard(self, user_id: str) -> None:
        with self._lock:
            self._entries.pop(user_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_registry: Optional[ChatSessionRegistry] = None
_registry_lock = threading.Lock()


def get_registry() -> ChatSessionRegistry:
    global _registry
    with _registry_lock:
        if _registry is None:
            _registry = ChatSessionRegistry()
        return _registry


def reset_registry() -> None:
    """Drop every session (tests, config reloads)."""
    global _registry
    with _registry_lock:
        _registry = None
