from __future__ import annotations

import itertools
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from chatgate.auth.models import ChatUser
from chatgate.authz.access import AccessDecision, evaluate_access
from chatgate.authz.policy import AccessPolicy, ProviderConfig, redact_text
from chatgate.chat.dispatch import DispatchError, dispatch_message_async
from chatgate.chat.types import ChatMessage, ChatRole, SubmissionState

logger = logging.getLogger(__name__)

DISPATCH_ERROR_TEXT = "Sorry, there was an error processing your message."

Dispatcher = Callable[[List[ChatMessage], ProviderConfig], Awaitable[str]]
Clock = Callable[[], datetime]


def _local_now() -> datetime:
    # The gate's day/hour rules are written in the console's wall-clock time.
    return datetime.now()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatSessionController:
    """
    One user's chat session: the transcript plus the idle/sending state machine.

    State transitions happen only inside `submit()`:
        idle --(accepted submit)--> sending --(reply or error appended)--> idle

    While `sending`, further submits are dropped, so at most one round trip is in flight
    and every accepted submit adds exactly two messages (user + assistant|system).
    """

    def __init__(
        self,
        *,
        policy: Optional[AccessPolicy] = None,
        user: Optional[ChatUser] = None,
        dispatcher: Optional[Dispatcher] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.policy = policy
        self.user = user
        self.input_buffer = ""
        self._dispatcher: Dispatcher = dispatcher or dispatch_message_async
        self._clock: Clock = clock or _local_now
        self._transcript: List[ChatMessage] = []
        self._state: SubmissionState = "idle"
        self._ids = itertools.count(1)

    @property
    def transcript(self) -> List[ChatMessage]:
        return list(self._transcript)

    @property
    def state(self) -> SubmissionState:
        return self._state

    def update_context(self, *, policy: Optional[AccessPolicy], user: Optional[ChatUser]) -> None:
        """Swap in the latest policy/user. No decision survives the swap."""
        self.policy = policy
        self.user = user

    def set_input(self, text: str) -> None:
        self.input_buffer = text or ""

    def access(self) -> AccessDecision:
        return evaluate_access(self.policy, self.user, self._clock())

    def can_submit(self, text: Optional[str] = None) -> bool:
        candidate = self.input_buffer if text is None else text
        return bool(candidate.strip()) and self._state == "idle" and self.access().allowed

    def view(self) -> Dict[str, Any]:
        """What the widget renders: the conversation, or a denial placeholder."""
        decision = self.access()
        return {
            "allowed": decision.allowed,
            "reason": decision.reason,
            "message": decision.message,
            "state": self._state,
            "messages": self.transcript if decision.allowed else [],
        }

    def _new_message(self, role: ChatRole, content: str) -> ChatMessage:
        return ChatMessage(id=str(next(self._ids)), role=role, content=content, timestamp=_utcnow())

    def _begin_sending(self) -> None:
        if self._state != "idle":
            raise RuntimeError("chat session is already sending")
        self._state = "sending"

    def _finish_sending(self) -> None:
        self._state = "idle"

    async def submit(self, text: Optional[str] = None) -> bool:
        """
        Send `text` (default: the input buffer). Returns False when the submit was ignored.

        Ignored when the text is blank, the gate denies, or a round trip is in flight.
        Dispatch failures never escape: they become a system message in the transcript.
        """
        content = (self.input_buffer if text is None else text or "").strip()
        if not content:
            return False
        if self._state != "idle":
            logger.debug("Chat submit ignored: already sending")
            return False
        decision = self.access()
        if not decision.allowed:
            logger.info("Chat submit denied: reason=%s", decision.reason)
            return False

        policy = self.policy
        if policy is None:
            return False

        self._transcript.append(self._new_message("user", content))
        self.input_buffer = ""
        self._begin_sending()
        try:
            reply = await self._dispatcher(list(self._transcript), policy.provider)
            self._transcript.append(self._new_message("assistant", reply))
        except DispatchError as e:
            logger.warning("Chat dispatch failed: provider=%s code=%s err=%s", policy.provider.kind, e.code, redact_text(e.message))
            self._transcript.append(self._new_message("system", DISPATCH_ERROR_TEXT))
        except Exception as e:
            logger.exception("Chat dispatch crashed: provider=%s err=%s", policy.provider.kind, redact_text(str(e)))
            self._transcript.append(self._new_message("system", DISPATCH_ERROR_TEXT))
        finally:
            self._finish_sending()
        return True
