from __future__ import annotations

import os
import threading
from typing import Mapping

from pydantic import BaseModel, ConfigDict, field_validator

from .risk import RiskLevel

_ENV_PREFIX = "TURNLINE_"


def _to_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


class TimelineConfig(BaseModel):
    """
    Tunables for the transcript pipeline and the plan flow.

    Durations are milliseconds. `from_env()` overlays `TURNLINE_<FIELD>` variables.
    """

    model_config = ConfigDict(frozen=True)

    dedup_window_ms: int = 100
    dedup_cache_capacity: int = 500
    dedup_cache_ttl_ms: int = 5000
    render_throttle_ms: int = 100

    side_by_side_min_width: int = 100
    large_content_chars: int = 50_000
    large_content_lines: int = 1000
    diff_max_lines: int = 20
    plan_preview_max_items: int = 6

    auto_apply_max_risk: RiskLevel = RiskLevel.MED
    debug: bool = False
    auto_approve: bool = False

    @field_validator(
        "dedup_window_ms",
        "dedup_cache_capacity",
        "dedup_cache_ttl_ms",
        "render_throttle_ms",
        "side_by_side_min_width",
        "large_content_chars",
        "large_content_lines",
        "diff_max_lines",
        "plan_preview_max_items",
    )
    @classmethod
    def _validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @field_validator("auto_apply_max_risk", mode="before")
    @classmethod
    def _normalize_risk(cls, v: object) -> object:
        if isinstance(v, str):
            cleaned = v.strip().upper()
            return "MED" if cleaned == "MEDIUM" else cleaned
        return v

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "TimelineConfig":
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for name, field in cls.model_fields.items():
            raw = env.get(_ENV_PREFIX + name.upper())
            if raw is None or not raw.strip():
                continue
            if field.annotation is bool:
                values[name] = _to_bool(raw, default=bool(field.default))
            else:
                values[name] = raw.strip()
        return cls.model_validate(values)


class SessionPolicy:
    """Session-scoped flags that can be flipped at runtime (e.g. from a key binding)."""

    def __init__(self, *, auto_approve: bool = False, debug: bool = False) -> None:
        self._lock = threading.Lock()
        self._auto_approve = bool(auto_approve)
        self._debug = bool(debug)

    @classmethod
    def from_config(cls, config: TimelineConfig) -> "SessionPolicy":
        return cls(auto_approve=config.auto_approve, debug=config.debug)

    @property
    def auto_approve(self) -> bool:
        with self._lock:
            return self._auto_approve

    @auto_approve.setter
    def auto_approve(self, enabled: bool) -> None:
        with self._lock:
            self._auto_approve = bool(enabled)

    @property
    def debug(self) -> bool:
        with self._lock:
            return self._debug

    @debug.setter
    def debug(self, enabled: bool) -> None:
        with self._lock:
            self._debug = bool(enabled)

    def toggle_debug(self) -> bool:
        with self._lock:
            self._debug = not self._debug
            return self._debug
