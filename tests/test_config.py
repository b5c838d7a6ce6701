from __future__ import annotations

import pytest
from pydantic import ValidationError

from turnline.runtime.config import SessionPolicy, TimelineConfig
from turnline.runtime.risk import RiskLevel


def test_defaults() -> None:
    config = TimelineConfig()

    assert config.dedup_window_ms == 100
    assert config.dedup_cache_capacity == 500
    assert config.dedup_cache_ttl_ms == 5000
    assert config.render_throttle_ms == 100
    assert config.side_by_side_min_width == 100
    assert config.large_content_chars == 50_000
    assert config.large_content_lines == 1000
    assert config.diff_max_lines == 20
    assert config.plan_preview_max_items == 6
    assert config.auto_apply_max_risk is RiskLevel.MED
    assert config.debug is False
    assert config.auto_approve is False


def test_from_env_overrides() -> None:
    config = TimelineConfig.from_env(
        {
            "TURNLINE_AUTO_APPROVE": "yes",
            "TURNLINE_DEBUG": "0",
            "TURNLINE_RENDER_THROTTLE_MS": "250",
            "TURNLINE_AUTO_APPLY_MAX_RISK": "medium",
            "TURNLINE_DIFF_MAX_LINES": " ",
            "UNRELATED": "1",
        }
    )

    assert config.auto_approve is True
    assert config.debug is False
    assert config.render_throttle_ms == 250
    assert config.auto_apply_max_risk is RiskLevel.MED
    assert config.diff_max_lines == 20


def test_from_env_reads_process_environment(monkeypatch) -> None:
    monkeypatch.setenv("TURNLINE_DEBUG", "true")
    monkeypatch.setenv("TURNLINE_AUTO_APPLY_MAX_RISK", "low")

    config = TimelineConfig.from_env()

    assert config.debug is True
    assert config.auto_apply_max_risk is RiskLevel.LOW


def test_unparseable_bool_falls_back_to_default() -> None:
    assert TimelineConfig.from_env({"TURNLINE_AUTO_APPROVE": "maybe"}).auto_approve is False


@pytest.mark.parametrize(
    "env",
    [
        {"TURNLINE_DIFF_MAX_LINES": "0"},
        {"TURNLINE_RENDER_THROTTLE_MS": "fast"},
        {"TURNLINE_AUTO_APPLY_MAX_RISK": "EXTREME"},
    ],
)
def test_invalid_values_are_rejected(env) -> None:
    with pytest.raises(ValidationError):
        TimelineConfig.from_env(env)


def test_config_is_frozen() -> None:
    with pytest.raises(ValidationError):
        TimelineConfig().debug = True  # type: ignore[misc]


def test_session_policy_from_config_and_toggle() -> None:
    policy = SessionPolicy.from_config(TimelineConfig(auto_approve=True))

    assert policy.auto_approve is True
    assert policy.debug is False
    assert policy.toggle_debug() is True
    assert policy.toggle_debug() is False
