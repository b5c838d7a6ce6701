from __future__ import annotations

import importlib
from typing import Any

from .config import SessionPolicy, TimelineConfig
from .dedup import EventDeduplicator, ExpiringLRUCache
from .errors import InvalidTransitionError, PlanBuildError, PlanExecutionError, ProtocolError, TurnlineError
from .events import Event, EventType, NoticeLevel, ToolStatus, event_from_dict
from .execution import ExecutionStateManager
from .grouping import MessageGroup, MessageGrouper
from .plan import ExecutionReport, ExecutionResult, MutationPlan, MutationPlanBuilder, MutationPlanItem
from .risk import MutationType, PatternRiskClassifier, RiskClassifier, RiskLevel
from .scheduler import RenderScheduler
from .status import ExecutionState
from .surface import ConfirmationPrompt, RenderSurface, ToolExecutor, ToolOutcome
from .tool_calls import ToolCall, plan_items_from_tool_calls

__all__ = [
    "ConfirmationPrompt",
    "Event",
    "EventDeduplicator",
    "EventType",
    "ExecutionReport",
    "ExecutionResult",
    "ExecutionState",
    "ExecutionStateManager",
    "ExpiringLRUCache",
    "InvalidTransitionError",
    "MessageGroup",
    "MessageGrouper",
    "MutationPlan",
    "MutationPlanBuilder",
    "MutationPlanItem",
    "MutationType",
    "NoticeLevel",
    "PatternRiskClassifier",
    "PlanBuildError",
    "PlanExecutionError",
    "ProtocolError",
    "RenderScheduler",
    "RenderSurface",
    "RiskClassifier",
    "RiskLevel",
    "SessionPolicy",
    "TimelineConfig",
    "ToolCall",
    "ToolExecutor",
    "ToolOutcome",
    "ToolStatus",
    "TurnlineError",
    "event_from_dict",
    "plan_items_from_tool_calls",
    # Lazily imported (see __getattr__); these depend on `turnline.ui`.
    "PlanRunner",
    "TimelinePipeline",
    "Turn",
    "TurnSession",
]


_LAZY_EXPORTS: dict[str, tuple[str, str]] = {
    "PlanRunner": (".plan_runner", "PlanRunner"),
    "TimelinePipeline": (".pipeline", "TimelinePipeline"),
    "Turn": (".session", "Turn"),
    "TurnSession": (".session", "TurnSession"),
}


def __getattr__(name: str) -> Any:
    """
    Defer the modules that import `turnline.ui`.

    `turnline.ui.timeline` imports this package's core modules, so importing the
    pipeline here eagerly would be circular.
    """

    target = _LAZY_EXPORTS.get(name)
    if target is None:
        raise AttributeError(name)
    module_name, attr = target
    module = importlib.import_module(module_name, __name__)
    value = getattr(module, attr)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(set(globals().keys()) | set(_LAZY_EXPORTS.keys()))
