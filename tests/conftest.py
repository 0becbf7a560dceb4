"""
Pytest config.

Local imports like `import chatgate` rely on the repo root being on sys.path. When a
global `pytest` entrypoint is used that doesn't happen reliably during collection, so we
pin it here.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterator

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()


@pytest.fixture(autouse=True)
def _isolate_chat_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """
    Every test starts with no chat policy configured, fresh auth settings, and an empty
    session registry. Tests opt in to config via monkeypatch.setenv.
    """
    from chatgate.auth.config import load_auth_config
    from chatgate.chat.registry import reset_registry

    for k in (
        "CHAT_POLICY_FILE",
        "CHAT_POLICY_JSON",
        "CHAT_DISPATCH_TIMEOUT_SECONDS",
        "CHAT_SESSION_TTL_SECONDS",
        "AUTH_SESSION_SECRET",
        "AUTH_SESSION_TTL_SECONDS",
        "AUTH_COOKIE_SECURE",
        "AUTH_PUBLIC_BASE_URL",
    ):
        monkeypatch.delenv(k, raising=False)
    load_auth_config.cache_clear()
    reset_registry()
    yield
    load_auth_config.cache_clear()
    reset_registry()
