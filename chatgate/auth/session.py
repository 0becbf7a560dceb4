from __future__ import annotations

import json
from dataclasses import asdict
from typing import Optional

from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer

from chatgate.auth.config import AuthConfig
from chatgate.auth.models import ChatUser

SESSION_SALT = "chatgate-console-session-v1"


def session_cookie_name(cfg: AuthConfig) -> str:
    # `__Host-` requires Secure + Path=/ + no Domain; browsers may reject it on HTTP.
    return "__Host-console_session" if cfg.cookie_secure else "console_session"


def _serializer(cfg: AuthConfig) -> Optional[URLSafeTimedSerializer]:
    if not cfg.session_secret:
        return None
    return URLSafeTimedSerializer(secret_key=cfg.session_secret, salt=SESSION_SALT)


def encode_session(cfg: AuthConfig, user: ChatUser) -> Optional[str]:
    s = _serializer(cfg)
    if s is None:
        return None
    raw = json.dumps(asdict(user), separators=(",", ":"), sort_keys=True)
    return s.dumps(raw)


def decode_session(cfg: AuthConfig, value: str | None) -> Optional[ChatUser]:
    if not value:
        return None
    s = _serializer(cfg)
    if s is None:
        return None
    try:
        raw = s.loads(value, max_age=cfg.session_ttl_seconds)
        data = json.loads(raw)
        if not isinstance(data, dict):
            return None
        user_id = str(data.get("id") or "").strip()
        role = str(data.get("role") or "").strip()
        if not user_id or not role:
            return None
        return ChatUser(id=user_id, role=role)
    except (BadSignature, BadTimeSignature, ValueError):
        return None
