from __future__ import annotations

import json

import pytest

STORED_CONFIG = {
    "status": "active",
    "allowedRoles": ["admin", "editor"],
    "allowedUsers": [42, "u-7"],
    "timeRestrictions": {"enabled": True, "daysOfWeek": [1, 2, 3, 4, 5], "startTime": "9:00", "endTime": "17:30"},
    "maintenanceMessage": "Down for upgrades",
    "provider": "gpt4",
    "apiConfig": {
        "endpoint": "https://llm.example.com/v1/chat/completions",
        "apiKey": "sk-test",
        "maxTokens": 256,
        "temperature": 0.2,
    },
}


def test_parse_stored_record_into_hosted_policy() -> None:
    from chatgate.authz.policy import HostedProviderConfig, parse_access_policy

    p = parse_access_policy(STORED_CONFIG)
    assert p.status == "active"
    assert p.allowed_roles == frozenset({"admin", "editor"})
    # ids are compared as strings
    assert p.allowed_users == frozenset({"42", "u-7"})
    assert p.time_restrictions.days_of_week == frozenset({1, 2, 3, 4, 5})
    assert p.time_restrictions.start_time == "09:00"
    assert p.time_restrictions.window_minutes == (9 * 60, 17 * 60 + 30)
    assert isinstance(p.provider, HostedProviderConfig)
    assert p.provider.api_key == "sk-test"
    assert p.provider.max_tokens == 256


def test_parse_local_provider_without_webhook_is_allowed() -> None:
    from chatgate.authz.policy import LocalProviderConfig, parse_access_policy

    raw = dict(STORED_CONFIG, provider="local", apiConfig={"webhookUrl": "  "})
    p = parse_access_policy(raw)
    assert isinstance(p.provider, LocalProviderConfig)
    assert p.provider.webhook_url is None


def test_parse_accepts_snake_case_and_nested_provider() -> None:
    from chatgate.authz.policy import parse_access_policy

    p = parse_access_policy(
        {
            "status": "maintenance",
            "allowed_roles": ["admin"],
            "provider": {"kind": "local", "webhook_url": "http://127.0.0.1:8000/hook"},
        }
    )
    assert p.status == "maintenance"
    assert p.provider.kind == "local"
    assert p.allowed_users == frozenset()
    assert p.time_restrictions.enabled is False


@pytest.mark.parametrize(
    "patch",
    [
        {"status": "paused"},
        {"provider": "claude"},
        {"timeRestrictions": {"enabled": True, "daysOfWeek": [7]}},
        {"timeRestrictions": {"enabled": True, "daysOfWeek": [1], "startTime": "25:00", "endTime": "26:00"}},
        {"timeRestrictions": {"enabled": True, "daysOfWeek": [1], "startTime": "9am", "endTime": "5pm"}},
    ],
)
def test_parse_rejects_malformed_records(patch) -> None:
    from chatgate.authz.policy import PolicyConfigError, parse_access_policy

    with pytest.raises(PolicyConfigError):
        parse_access_policy(dict(STORED_CONFIG, **patch))


def test_policy_is_frozen() -> None:
    from pydantic import ValidationError

    from chatgate.authz.policy import parse_access_policy

    p = parse_access_policy(STORED_CONFIG)
    with pytest.raises(ValidationError):
        p.status = "disabled"  # type: ignore[misc]


def test_load_returns_none_when_unconfigured() -> None:
    from chatgate.authz.policy import load_access_policy

    assert load_access_policy() is None


def test_load_from_yaml_file(monkeypatch, tmp_path) -> None:
    from chatgate.authz.policy import load_access_policy

    f = tmp_path / "policy.yaml"
    f.write_text(
        "\n".join(
            [
                "status: active",
                "allowedRoles: [admin]",
                "provider: local",
                "apiConfig:",
                "  webhookUrl: http://localhost:5000/chat",
            ]
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("CHAT_POLICY_FILE", str(f))
    p = load_access_policy()
    assert p is not None
    assert p.provider.kind == "local"
    assert p.provider.webhook_url == "http://localhost:5000/chat"


def test_load_yaml_with_unquoted_times(monkeypatch, tmp_path) -> None:
    from chatgate.authz.policy import load_access_policy

    f = tmp_path / "policy.yaml"
    f.write_text(
        "\n".join(
            [
                "status: active",
                "allowedRoles: [admin]",
                "timeRestrictions:",
                "  enabled: true",
                "  daysOfWeek: [1, 2, 3, 4, 5]",
                "  startTime: 9:00",
                "  endTime: 17:30",
                "provider: local",
                "apiConfig:",
                "  webhookUrl: http://localhost:5000/chat",
            ]
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("CHAT_POLICY_FILE", str(f))
    p = load_access_policy()
    assert p is not None
    assert p.time_restrictions.start_time == "09:00"
    assert p.time_restrictions.end_time == "17:30"
    assert p.time_restrictions.window_minutes == (9 * 60, 17 * 60 + 30)


@pytest.mark.parametrize("value", [-1, 1440, True])
def test_integer_times_out_of_range_are_rejected(value) -> None:
    from chatgate.authz.policy import PolicyConfigError, parse_access_policy

    tr = {"enabled": True, "daysOfWeek": [1], "startTime": value, "endTime": "17:00"}
    with pytest.raises(PolicyConfigError):
        parse_access_policy(dict(STORED_CONFIG, timeRestrictions=tr))


def test_load_rereads_file_on_every_call(monkeypatch, tmp_path) -> None:
    from chatgate.authz.policy import load_access_policy

    f = tmp_path / "policy.json"
    f.write_text(json.dumps(STORED_CONFIG), encoding="utf-8")
    monkeypatch.setenv("CHAT_POLICY_FILE", str(f))
    assert load_access_policy().status == "active"

    f.write_text(json.dumps(dict(STORED_CONFIG, status="maintenance")), encoding="utf-8")
    assert load_access_policy().status == "maintenance"


def test_load_from_inline_json(monkeypatch) -> None:
    from chatgate.authz.policy import load_access_policy

    monkeypatch.setenv("CHAT_POLICY_JSON", json.dumps(STORED_CONFIG))
    assert load_access_policy().provider.kind == "gpt4"


def test_load_errors_are_config_errors(monkeypatch, tmp_path) -> None:
    from chatgate.authz.policy import PolicyConfigError, load_access_policy

    monkeypatch.setenv("CHAT_POLICY_FILE", str(tmp_path / "missing.yaml"))
    with pytest.raises(PolicyConfigError):
        load_access_policy()

    monkeypatch.delenv("CHAT_POLICY_FILE")
    monkeypatch.setenv("CHAT_POLICY_JSON", "{not json")
    with pytest.raises(PolicyConfigError):
        load_access_policy()


def test_dispatch_timeout_default_and_bounds(monkeypatch) -> None:
    from chatgate.authz.policy import load_dispatch_settings

    assert load_dispatch_settings().timeout_seconds == 60
    monkeypatch.setenv("CHAT_DISPATCH_TIMEOUT_SECONDS", "1")
    assert load_dispatch_settings().timeout_seconds == 5
    monkeypatch.setenv("CHAT_DISPATCH_TIMEOUT_SECONDS", "9999")
    assert load_dispatch_settings().timeout_seconds == 300
    monkeypatch.setenv("CHAT_DISPATCH_TIMEOUT_SECONDS", "invalid")
    assert load_dispatch_settings().timeout_seconds == 60


def test_redact_text_strips_bearer_tokens_and_keys() -> None:
    from chatgate.authz.policy import redact_text

    out = redact_text("401 for Authorization: Bearer abcdefgh12345678 with api_key=supersecret99")
    assert "abcdefgh12345678" not in out
    assert "supersecret99" not in out
    assert redact_text("") == ""
