"""
Outbound call to the configured chat provider.

Two wire protocols:
- gpt4 (hosted): POST endpoint with a bearer token and the whole transcript as
  `{messages: [{role, content}], max_tokens, temperature}`; reply at
  `choices[0].message.content` (fallback: top-level `message`).
- local (webhook): POST webhook_url, no auth, `{message, history}`; reply at `message`.

Exactly one HTTP request per call. No retries, no streaming. Every failure is raised as
DispatchError; callers only branch on success vs failure, `code` is for logs.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

import requests

from chatgate.authz.policy import HostedProviderConfig, LocalProviderConfig, ProviderConfig, load_dispatch_settings
from chatgate.chat.types import ChatMessage

logger = logging.getLogger(__name__)


class DispatchError(Exception):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


def _nonempty_str(v: Any) -> Optional[str]:
    if isinstance(v, str) and v.strip():
        return v
    return None


def _hosted_reply(data: Dict[str, Any]) -> Optional[str]:
    choices = data.get("choices")
    if isinstance(choices, list) and choices:
        first = choices[0]
        if isinstance(first, dict):
            msg = first.get("message")
            if isinstance(msg, dict):
                content = _nonempty_str(msg.get("content"))
                if content is not None:
                    return content
    return _nonempty_str(data.get("message"))


def _local_reply(data: Dict[str, Any]) -> Optional[str]:
    return _nonempty_str(data.get("message"))


def _hosted_request(transcript: Sequence[ChatMessage], cfg: HostedProviderConfig) -> tuple[str, Dict[str, str], Dict[str, Any]]:
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {cfg.api_key}",
    }
    body = {
        "messages": [{"role": m.role, "content": m.content} for m in transcript],
        "max_tokens": cfg.max_tokens,
        "temperature": cfg.temperature,
    }
    return cfg.endpoint, headers, body


def _local_request(transcript: Sequence[ChatMessage], cfg: LocalProviderConfig) -> tuple[str, Dict[str, str], Dict[str, Any]]:
    if not cfg.webhook_url:
        raise DispatchError("missing_webhook_url", "Local provider selected but no webhook URL is configured")
    if not transcript:
        raise DispatchError("empty_transcript", "Nothing to send")
    *history, latest = transcript
    body = {
        "message": latest.content,
        "history": [m.model_dump(mode="json") for m in history],
    }
    return cfg.webhook_url, {"Content-Type": "application/json"}, body


def dispatch_message(
    transcript: Sequence[ChatMessage],
    provider: ProviderConfig,
    *,
    session: Any = None,
    timeout: Optional[float] = None,
) -> str:
    """
    Send the conversation to `provider` and return the normalized reply text.

    `transcript` must already end with the new user message. `session` is anything with a
    requests-compatible `post()` (defaults to the `requests` module).
    """
    if isinstance(provider, HostedProviderConfig):
        url, headers, body = _hosted_request(transcript, provider)
        extract = _hosted_reply
    else:
        url, headers, body = _local_request(transcript, provider)
        extract = _local_reply

    if timeout is None:
        timeout = load_dispatch_settings().timeout_seconds
    http = session if session is not None else requests

    logger.debug("Chat dispatch: provider=%s messages=%d", provider.kind, len(transcript))
    try:
        resp = http.post(url, json=body, headers=headers, timeout=timeout)
        resp.raise_for_status()
    except requests.exceptions.HTTPError as e:
        status = getattr(getattr(e, "response", None), "status_code", None)
        raise DispatchError(f"http_status:{status}", f"Provider returned HTTP {status}") from e
    except requests.exceptions.RequestException as e:
        raise DispatchError("network_error", f"Provider request failed: {e}") from e

    try:
        data = resp.json()
    except ValueError as e:
        raise DispatchError("bad_response", "Provider response is not JSON") from e
    if not isinstance(data, dict):
        raise DispatchError("bad_response", "Provider response is not a JSON object")

    reply = extract(data)
    if reply is None:
        raise DispatchError("missing_reply", "Provider response has no reply text")
    return reply


async def dispatch_message_async(transcript: List[ChatMessage], provider: ProviderConfig) -> str:
    """Run the blocking dispatch in a worker thread so the event loop stays responsive."""
    return await asyncio.to_thread(dispatch_message, list(transcript), provider)
