"""
Chat widget API.

Serves the console's embedded chat widget: gate status, the user's transcript, and
message submission. Policy is re-read on every request so admin edits apply on the next
render; sessions live in process memory only.
"""

from __future__ import annotations

import logging
import os
import time
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import ValidationError

from chatgate.auth.models import ChatUser
from chatgate.authz.access import AccessDecision, evaluate_access
from chatgate.authz.policy import AccessPolicy, PolicyConfigError, load_access_policy
from chatgate.chat.registry import get_registry
from chatgate.chat.types import (
    ChatAccessResponse,
    ChatConfigResponse,
    ChatSendRequest,
    ChatSendResponse,
    ChatTranscriptResponse,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="chatgate")


def _current_policy() -> Optional[AccessPolicy]:
    try:
        return load_access_policy()
    except PolicyConfigError as e:
        # A broken config closes the gate instead of failing the page.
        logger.warning("Chat policy unavailable: %s", str(e))
        return None


def _request_user(request: Request) -> Optional[ChatUser]:
    user = getattr(request.state, "user", None)
    return user if isinstance(user, ChatUser) else None


def _access_payload(decision: AccessDecision) -> ChatAccessResponse:
    return ChatAccessResponse(allowed=decision.allowed, reason=decision.reason, message=decision.message)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log requests and attach the session user (if any) to request.state."""
    start_time = time.time()
    logger.debug("%s %s", request.method, request.url.path)
    try:
        from chatgate.auth.deps import authenticate_request

        request.state.user = authenticate_request(request)
        response = await call_next(request)
        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
        raise


@app.get("/healthz")
def healthz() -> Dict[str, Any]:
    return {"ok": True}


@app.get("/api/v1/chat/config")
async def chat_config() -> Dict[str, Any]:
    policy = _current_policy()
    if policy is None:
        raise HTTPException(status_code=503, detail="Chat policy not configured")
    tr = policy.time_restrictions
    return ChatConfigResponse(
        status=policy.status,
        provider=policy.provider.kind,
        maintenance_message=policy.maintenance_message,
        time_restrictions={
            "enabled": tr.enabled,
            "days_of_week": sorted(tr.days_of_week),
            "start_time": tr.start_time,
            "end_time": tr.end_time,
        },
    ).model_dump(mode="json")


@app.get("/api/v1/chat/access")
async def chat_access(request: Request) -> Dict[str, Any]:
    decision = evaluate_access(_current_policy(), _request_user(request), datetime.now())
    return _access_payload(decision).model_dump(mode="json")


@app.get("/api/v1/chat/transcript")
async def chat_transcript(request: Request) -> Dict[str, Any]:
    user = _request_user(request)
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    controller = get_registry().get(user.id)
    if controller is None:
        return ChatTranscriptResponse(state="idle", messages=[]).model_dump(mode="json")
    controller.update_context(policy=_current_policy(), user=user)
    view = controller.view()
    return ChatTranscriptResponse(state=view["state"], messages=view["messages"]).model_dump(mode="json")


@app.post("/api/v1/chat/messages")
async def chat_send(request: Request, req: Dict[str, Any]) -> Dict[str, Any]:
    """
    Submit one message for the current user.

    Request body: { message: string }

    Blank, denied, or concurrent submissions are no-ops: `accepted` is false and the
    transcript is unchanged. Provider failures show up as a system message, not an HTTP error.
    """
    try:
        creq = ChatSendRequest.model_validate(req)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid chat request")

    policy = _current_policy()
    user = _request_user(request)
    if user is None:
        decision = evaluate_access(policy, None, datetime.now())
        return ChatSendResponse(accepted=False, access=_access_payload(decision), state="idle").model_dump(mode="json")

    controller = get_registry().get_or_create(user.id)
    controller.update_context(policy=policy, user=user)
    accepted = await controller.submit(creq.message)

    view = controller.view()
    return ChatSendResponse(
        accepted=accepted,
        access=ChatAccessResponse(allowed=view["allowed"], reason=view["reason"], message=view["message"]),
        state=view["state"],
        messages=view["messages"],
    ).model_dump(mode="json")


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    import uvicorn

    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    logger.info("Starting chat API on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_log_level)
