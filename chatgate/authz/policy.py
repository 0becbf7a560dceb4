from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any, Dict, FrozenSet, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

ChatStatus = Literal["active", "maintenance", "disabled"]

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


class PolicyConfigError(ValueError):
    """Raised when a stored chat configuration record cannot be turned into an AccessPolicy."""


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except Exception:
        return default


def parse_time_of_day(value: str) -> int:
    """
    Parse `H:MM` / `HH:MM` into minutes since midnight.

    Comparing minute-of-day integers avoids the string-ordering trap where "9:05" sorts
    after "17:30".
    """
    m = _HHMM_RE.match((value or "").strip())
    if not m:
        raise ValueError(f"invalid time of day: {value!r}")
    hours, minutes = int(m.group(1)), int(m.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError(f"invalid time of day: {value!r}")
    return hours * 60 + minutes


class HostedProviderConfig(BaseModel):
    """Authenticated chat-completion endpoint (token metered)."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    kind: Literal["gpt4"] = "gpt4"
    endpoint: str
    api_key: str = Field(default="", alias="apiKey")
    max_tokens: int = Field(default=1000, alias="maxTokens")
    temperature: float = 0.7


class LocalProviderConfig(BaseModel):
    """Unauthenticated webhook in front of a locally hosted model."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    kind: Literal["local"] = "local"
    # May be missing in stored configs; dispatch fails cleanly in that case.
    webhook_url: Optional[str] = Field(default=None, alias="webhookUrl")

    @field_validator("webhook_url", mode="before")
    @classmethod
    def _blank_url(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        s = str(v).strip()
        return s or None


ProviderConfig = Annotated[Union[HostedProviderConfig, LocalProviderConfig], Field(discriminator="kind")]


class TimeRestrictions(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    enabled: bool = False
    # 0 = Sunday ... 6 = Saturday
    days_of_week: FrozenSet[int] = Field(default_factory=frozenset, alias="daysOfWeek")
    # Normalized zero-padded HH:MM
    start_time: Optional[str] = Field(default=None, alias="startTime")
    end_time: Optional[str] = Field(default=None, alias="endTime")

    @field_validator("days_of_week")
    @classmethod
    def _days_in_range(cls, v: FrozenSet[int]) -> FrozenSet[int]:
        bad = sorted(d for d in v if d < 0 or d > 6)
        if bad:
            raise ValueError(f"weekday index out of range 0-6: {bad}")
        return v

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _normalize_hhmm(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        if isinstance(v, int) and not isinstance(v, bool):
            # YAML 1.1 reads unquoted 9:00 as the base-60 int 540 (minutes since midnight).
            if v < 0 or v > 23 * 60 + 59:
                raise ValueError(f"invalid time of day: {v!r}")
            minutes = v
        else:
            s = str(v).strip()
            if not s:
                return None
            minutes = parse_time_of_day(s)
        return f"{minutes // 60:02d}:{minutes % 60:02d}"

    @property
    def window_minutes(self) -> Optional[tuple[int, int]]:
        """(start, end) minute-of-day, or None unless both ends are configured."""
        if self.start_time is None or self.end_time is None:
            return None
        return parse_time_of_day(self.start_time), parse_time_of_day(self.end_time)


class AccessPolicy(BaseModel):
    """
    Chat feature gate plus the provider the widget talks to.

    Frozen: a changed configuration is a new AccessPolicy instance.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    status: ChatStatus = "disabled"
    allowed_roles: FrozenSet[str] = Field(default_factory=frozenset, alias="allowedRoles")
    allowed_users: FrozenSet[str] = Field(default_factory=frozenset, alias="allowedUsers")
    time_restrictions: TimeRestrictions = Field(default_factory=TimeRestrictions, alias="timeRestrictions")
    maintenance_message: Optional[str] = Field(default=None, alias="maintenanceMessage")
    provider: ProviderConfig

    @field_validator("allowed_roles", "allowed_users", mode="before")
    @classmethod
    def _str_members(cls, v: Any) -> Any:
        if v is None:
            return frozenset()
        if isinstance(v, (list, tuple, set, frozenset)):
            return frozenset(str(x).strip() for x in v if str(x).strip())
        return v


def parse_access_policy(raw: Dict[str, Any]) -> AccessPolicy:
    """
    Build an AccessPolicy from the console's stored chat configuration record.

    The stored shape keeps the provider tag and its parameters apart:
      { status, allowedRoles, allowedUsers, timeRestrictions, maintenanceMessage,
        provider: "gpt4" | "local", apiConfig: { endpoint, apiKey, maxTokens, temperature, webhookUrl } }

    snake_case keys and an already-nested `provider: {kind: ...}` object are accepted too.
    """
    if not isinstance(raw, dict):
        raise PolicyConfigError("chat configuration must be a mapping")

    data = dict(raw)
    provider = data.get("provider")
    api_config = data.pop("apiConfig", None)
    if api_config is None:
        api_config = data.pop("api_config", None)
    if isinstance(provider, str):
        merged = dict(api_config or {})
        merged["kind"] = provider.strip().lower()
        data["provider"] = merged

    try:
        return AccessPolicy.model_validate(data)
    except ValidationError as e:
        raise PolicyConfigError(f"invalid chat configuration: {e.error_count()} error(s)") from e


def load_access_policy() -> Optional[AccessPolicy]:
    """
    Load the chat policy from env (ConfigMap/Secret friendly).

    Recommended vars:
    - CHAT_POLICY_FILE=/etc/chatgate/policy.yaml  (YAML or JSON)
    - CHAT_POLICY_JSON='{"status": "active", ...}'  (inline, used when no file is set)

    Returns None when nothing is configured. Read on every call so edits apply on the next render.
    """
    path = (os.getenv("CHAT_POLICY_FILE") or "").strip()
    if path:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise PolicyConfigError(f"cannot read chat policy file {path}: {e}") from e
        try:
            raw = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise PolicyConfigError(f"chat policy file {path} is not valid YAML/JSON") from e
        return parse_access_policy(raw)

    inline = (os.getenv("CHAT_POLICY_JSON") or "").strip()
    if inline:
        try:
            raw = json.loads(inline)
        except json.JSONDecodeError as e:
            raise PolicyConfigError("CHAT_POLICY_JSON is not valid JSON") from e
        return parse_access_policy(raw)

    return None


@dataclass(frozen=True)
class DispatchSettings:
    timeout_seconds: int = 60


def load_dispatch_settings() -> DispatchSettings:
    """
    Recommended vars:
    - CHAT_DISPATCH_TIMEOUT_SECONDS=60  (clamped to 5-300)
    """
    return DispatchSettings(timeout_seconds=max(5, min(_env_int("CHAT_DISPATCH_TIMEOUT_SECONDS", 60), 300)))


_REDACT_PATTERNS = [
    re.compile(r"(?i)(api[_-]?key|token|secret|password)\s*[:=]\s*['\"]?([a-zA-Z0-9_\-+=/.]{8,})['\"]?"),
    re.compile(r"(?i)authorization\s*:\s*bearer\s+[a-zA-Z0-9._\-]{8,}"),
    re.compile(r"(?i)\bbearer\s+[a-zA-Z0-9._\-]{8,}"),
    re.compile(r"\b(sk|pk)-[a-zA-Z0-9_\-]{16,}\b"),
]


def redact_text(s: str) -> str:
    """
    Best-effort secret redaction for log lines.

    Example:
        >>> redact_text("Authorization: Bearer abcdefgh12345678")
        "[REDACTED]"
    """
    if not s:
        return s
    out = s
    for pat in _REDACT_PATTERNS:
        out = pat.sub("[REDACTED]", out)
    return out
