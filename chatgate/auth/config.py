from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


@dataclass(frozen=True)
class AuthConfig:
    public_base_url: Optional[str]
    session_secret: Optional[str]  # Required for session signing
    session_ttl_seconds: int
    cookie_secure: bool


@lru_cache(maxsize=1)
def load_auth_config() -> AuthConfig:
    """
    Load session-cookie settings from environment variables.

    Without AUTH_SESSION_SECRET no cookie validates and every request is anonymous.
    """
    public_base_url = (os.getenv("AUTH_PUBLIC_BASE_URL", "") or "").strip() or None
    cookie_secure_env = (os.getenv("AUTH_COOKIE_SECURE", "") or "").strip().lower()
    if cookie_secure_env in ("1", "true", "yes", "on"):
        cookie_secure = True
    elif cookie_secure_env in ("0", "false", "no", "off"):
        cookie_secure = False
    else:
        # Default: secure cookies when base URL is https; otherwise allow local dev.
        cookie_secure = True if (public_base_url or "").startswith("https://") else False

    try:
        ttl = int(float((os.getenv("AUTH_SESSION_TTL_SECONDS", "") or "43200").strip() or "43200"))  # 12h default
    except ValueError:
        ttl = 43200
    if ttl <= 60:
        ttl = 60

    return AuthConfig(
        public_base_url=public_base_url,
        session_secret=(os.getenv("AUTH_SESSION_SECRET", "") or "").strip() or None,
        session_ttl_seconds=ttl,
        cookie_secure=cookie_secure,
    )
