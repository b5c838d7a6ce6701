from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from .errors import PlanBuildError
from .ids import new_id
from .risk import MutationType, PatternRiskClassifier, RiskClassifier, RiskLevel, command_family, max_risk
from .status import ExecutionState

if TYPE_CHECKING:
    from .tool_calls import ToolCall

COMMAND_PREVIEW_MAX_CHARS = 60


@dataclass(frozen=True, slots=True)
class CommandPreview:
    preview: str
    risk: RiskLevel
    details: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class MutationPlanItem:
    type: MutationType
    label: str
    target: str
    preview: str
    risk: RiskLevel
    can_auto_apply: bool = False
    tool_call: "ToolCall | None" = None
    working_directory: str | None = None
    command_preview: CommandPreview | None = None


@dataclass(slots=True)
class MutationPlan:
    """
    The reviewable unit of one agent turn.

    Items are frozen at build time; `state` mirrors the execution state manager's
    state as of the last transition that carried this plan.
    """

    id: str
    summary: str
    items: tuple[MutationPlanItem, ...]
    created_at: datetime
    state: ExecutionState = ExecutionState.PREVIEW_READY
    auto_approved: bool = False

    def has_high_risk(self) -> bool:
        return any(it.risk is RiskLevel.HIGH for it in self.items)


def _basename(target: str) -> str:
    return target.rstrip("/").split("/")[-1] or target


def default_label(mutation_type: MutationType, target: str) -> str:
    if mutation_type is MutationType.WRITE_FILE:
        return f"Write {_basename(target)}"
    if mutation_type is MutationType.PATCH_FILE:
        return f"Edit {_basename(target)}"
    if mutation_type is MutationType.RUN_BASH:
        return f"Run: {target}"
    if mutation_type is MutationType.GIT_OP:
        return f"Git: {target}"
    return target


@dataclass
class MutationPlanBuilder:
    """Collects risk-scored items for one turn and freezes them into a MutationPlan."""

    classifier: RiskClassifier = field(default_factory=PatternRiskClassifier)

    _plan_id: str = field(default_factory=lambda: new_id("plan"), init=False)
    _summary: str = field(default="", init=False)
    _items: list[MutationPlanItem] = field(default_factory=list, init=False)
    _created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc), init=False)
    _built: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        if self.classifier is None:
            self.classifier = PatternRiskClassifier()

    def add_item(
        self,
        mutation_type: MutationType | str,
        target: str,
        preview: str = "",
        *,
        tool_call: "ToolCall | None" = None,
        working_directory: str | None = None,
        can_auto_apply: bool = False,
        label: str | None = None,
        risk: RiskLevel | str | None = None,
    ) -> MutationPlanItem:
        """
        Append an item. Risk is scored here, not at build time.

        An explicit `risk` flags the item and can only raise the classified level.
        """

        if self._built:
            raise PlanBuildError("Plan already built; call reset() before adding items.")
        kind = MutationType(mutation_type)
        if not isinstance(target, str) or not target.strip():
            raise ValueError("MutationPlanItem.target must be a non-empty string.")
        scored = self.classifier.classify(kind, target)
        if risk is not None:
            scored = max_risk(scored, RiskLevel(risk))

        command_preview = None
        if kind in {MutationType.RUN_BASH, MutationType.GIT_OP}:
            command_preview = self.command_preview(target, working_directory=working_directory, risk=scored)

        item = MutationPlanItem(
            type=kind,
            label=label or default_label(kind, target),
            target=target,
            preview=str(preview or ""),
            risk=scored,
            can_auto_apply=bool(can_auto_apply),
            tool_call=tool_call,
            working_directory=working_directory,
            command_preview=command_preview,
        )
        self._items.append(item)
        return item

    def command_preview(self, command: str, *, working_directory: str | None = None, risk: RiskLevel | None = None) -> CommandPreview:
        cwd = working_directory or os.getcwd()
        scored = risk if risk is not None else self.classifier.classify(MutationType.RUN_BASH, command)
        details = [f"Directory: {cwd}", f"Risk Level: {scored.value}"]
        family = command_family(command)
        if family:
            details.append(family)
        one_line = " ".join(command.split())
        if len(one_line) > COMMAND_PREVIEW_MAX_CHARS:
            one_line = one_line[: COMMAND_PREVIEW_MAX_CHARS - 3] + "..."
        return CommandPreview(preview=one_line, risk=scored, details=tuple(details))

    def set_summary(self, summary: str) -> None:
        self._summary = str(summary or "").strip()

    def build(self) -> MutationPlan:
        if not self._items:
            raise PlanBuildError("MutationPlan must have at least one item.")
        self._built = True
        return MutationPlan(
            id=self._plan_id,
            summary=self._summary or self._default_summary(),
            items=tuple(self._items),
            created_at=self._created_at,
            state=ExecutionState.PREVIEW_READY,
        )

    def reset(self) -> None:
        self._plan_id = new_id("plan")
        self._summary = ""
        self._items = []
        self._created_at = datetime.now(timezone.utc)
        self._built = False

    def has_items(self) -> bool:
        return bool(self._items)

    def item_count(self) -> int:
        return len(self._items)

    def get_high_risk_items(self) -> list[MutationPlanItem]:
        return [it for it in self._items if it.risk is RiskLevel.HIGH]

    def get_medium_risk_items(self) -> list[MutationPlanItem]:
        return [it for it in self._items if it.risk is RiskLevel.MED]

    def get_low_risk_items(self) -> list[MutationPlanItem]:
        return [it for it in self._items if it.risk is RiskLevel.LOW]

    def _default_summary(self) -> str:
        counts: dict[MutationType, int] = {}
        for it in self._items:
            counts[it.type] = counts.get(it.type, 0) + 1
        parts: list[str] = []
        files = counts.get(MutationType.WRITE_FILE, 0) + counts.get(MutationType.PATCH_FILE, 0)
        if files:
            parts.append(f"{files} file change{'s' if files != 1 else ''}")
        commands = counts.get(MutationType.RUN_BASH, 0) + counts.get(MutationType.GIT_OP, 0)
        if commands:
            parts.append(f"{commands} command{'s' if commands != 1 else ''}")
        other = counts.get(MutationType.OTHER, 0)
        if other:
            parts.append(f"{other} other action{'s' if other != 1 else ''}")
        return ", ".join(parts)


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    item: MutationPlanItem
    success: bool
    output: str | None = None
    error: str | None = None
    duration_ms: int = 0


@dataclass(frozen=True, slots=True)
class ExecutionReport:
    plan_id: str
    summary: str
    results: tuple[ExecutionResult, ...]
    duration_ms: int
    state: ExecutionState
    # "auto" | "user" | "declined" | "failed"
    approval: str
    error: str | None = None

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def executed(self) -> bool:
        return bool(self.results)
