"""Chat feature gate: who may use the widget, right now."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from chatgate.auth.models import ChatUser
from chatgate.authz.policy import AccessPolicy

DEFAULT_MAINTENANCE_MESSAGE = "Chat is currently under maintenance."
DEFAULT_UNAVAILABLE_MESSAGE = "Chat is not available at this time."


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    # unavailable | status:<status> | role | identity | day | time
    reason: Optional[str] = None
    # Placeholder text for the widget when denied.
    message: Optional[str] = None


ALLOWED = AccessDecision(allowed=True)


def weekday_index(now: datetime) -> int:
    """0 = Sunday ... 6 = Saturday (the convention stored in daysOfWeek)."""
    return (now.weekday() + 1) % 7


def _deny(reason: str, policy: Optional[AccessPolicy] = None) -> AccessDecision:
    return AccessDecision(allowed=False, reason=reason, message=denial_message(reason, policy))


def denial_message(reason: Optional[str], policy: Optional[AccessPolicy] = None) -> Optional[str]:
    if reason is None:
        return None
    if reason == "status:maintenance":
        custom = (policy.maintenance_message or "").strip() if policy is not None else ""
        return custom or DEFAULT_MAINTENANCE_MESSAGE
    return DEFAULT_UNAVAILABLE_MESSAGE


def evaluate_access(
    policy: Optional[AccessPolicy],
    user: Optional[ChatUser],
    now: datetime,
) -> AccessDecision:
    """
    Decide whether `user` may use chat at wall-clock time `now`.

    Criteria are checked in a fixed order and the first failure is reported, so the
    placeholder shown to the user is stable:
      unavailable -> status -> role -> identity -> day -> time

    Pure: no I/O, no caching. Call it on every render.
    """
    if policy is None or user is None:
        return _deny("unavailable")

    if policy.status != "active":
        return _deny(f"status:{policy.status}", policy)

    if user.role not in policy.allowed_roles:
        return _deny("role", policy)

    if policy.allowed_users and user.id not in policy.allowed_users:
        return _deny("identity", policy)

    tr = policy.time_restrictions
    if tr.enabled:
        if weekday_index(now) not in tr.days_of_week:
            return _deny("day", policy)

        # Only a fully specified window restricts; a lone start or end is ignored.
        window = tr.window_minutes
        if window is not None:
            start, end = window
            current = now.hour * 60 + now.minute
            if current < start or current > end:
                return _deny("time", policy)

    return ALLOWED
