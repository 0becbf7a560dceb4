from __future__ import annotations

from typing import Optional

from fastapi import Request

from chatgate.auth.config import load_auth_config
from chatgate.auth.models import ChatUser
from chatgate.auth.session import decode_session, session_cookie_name


def authenticate_request(request: Request) -> Optional[ChatUser]:
    """
    Return the ChatUser carried by the session cookie, or None.

    An anonymous request is not an error: the chat gate reports it as `unavailable`.
    """
    cfg = load_auth_config()
    return decode_session(cfg, request.cookies.get(session_cookie_name(cfg)))
