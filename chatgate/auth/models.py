from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ChatUser:
    """Identity facts the chat gate reads. Produced by the console's auth layer."""

    id: str
    role: str
