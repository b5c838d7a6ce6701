from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from ..ui.timeline import RenderOptions, TimelineRenderer
from .errors import InvalidTransitionError, PlanExecutionError
from .events import Event, NoticeLevel, diff_preview, system_notice, tool_invocation, tool_result
from .execution import ExecutionStateManager
from .ids import Clock, MonotonicClock, new_id
from .plan import ExecutionReport, ExecutionResult, MutationPlan, MutationPlanItem
from .risk import MutationType
from .status import ExecutionState
from .surface import ConfirmationPrompt, ToolExecutor, ToolOutcome
from .tool_calls import ToolCall

LOGGER = logging.getLogger(__name__)

PLAN_OPTIONS: tuple[str, ...] = ("yes", "no", "always")

_FILE_TYPES = frozenset({MutationType.WRITE_FILE, MutationType.PATCH_FILE})

EventSink = Callable[[Event], bool]


def _elapsed_ms(clock: Clock, start: float) -> int:
    return max(0, int(round((clock.now() - start) * 1000)))


def _preview_as_diff(item: MutationPlanItem) -> str | None:
    if not item.preview:
        return None
    if item.type is MutationType.PATCH_FILE:
        return item.preview
    # New file content: every line is an addition.
    return "\n".join(f"+{line}" for line in item.preview.splitlines())


def _tool_call_for(item: MutationPlanItem) -> ToolCall:
    if item.tool_call is not None:
        return item.tool_call
    return ToolCall(id=new_id("call"), name=item.type.value.lower(), arguments={"target": item.target})


@dataclass
class PlanRunner:
    """
    Drives one plan from PREVIEW_READY to DONE or ERROR.

    Everything the user sees goes through `emit` as events; the runner never
    writes to a surface directly.
    """

    manager: ExecutionStateManager
    executor: ToolExecutor
    prompt: ConfirmationPrompt
    emit: EventSink
    options: RenderOptions = field(default_factory=RenderOptions)
    stop_on_failure: bool = False
    clock: Clock = field(default_factory=MonotonicClock)

    async def run(self, plan: MutationPlan) -> ExecutionReport:
        started = self.clock.now()
        if self.manager.state is not ExecutionState.PREVIEW_READY or self.manager.plan is not plan:
            try:
                self.manager.transition_or_raise(ExecutionState.PREVIEW_READY, plan)
            except InvalidTransitionError as e:
                raise PlanExecutionError(f"Plan cannot be previewed from {e.before}.", plan_id=plan.id, cause=e) from e

        for item in plan.items:
            if item.type in _FILE_TYPES:
                self.emit(diff_preview(item.target, _preview_as_diff(item)))

        try:
            approval = await self._approve(plan)
        except Exception as e:
            LOGGER.exception("plan_confirmation_failed", extra={"plan_id": plan.id})
            return self._fail(plan, started, results=[], approval="failed", error=f"Confirmation failed: {e}")

        if approval == "declined":
            self.manager.transition(ExecutionState.DONE, plan)
            self.emit(system_notice(NoticeLevel.WARNING, "Plan cancelled; no changes were applied."))
            return self._report(plan, started, results=[], approval=approval)

        results: list[ExecutionResult] = []
        for item in plan.items:
            result = await self._execute_item(item)
            results.append(result)
            if result.success:
                continue
            self.emit(system_notice(NoticeLevel.ERROR, f"{item.label} failed: {result.error or 'unknown error'}"))
            if self.stop_on_failure:
                return self._fail(
                    plan,
                    started,
                    results=results,
                    approval=approval,
                    error=f"Stopped after failed item: {item.label}",
                )

        self.manager.transition(ExecutionState.DONE, plan)
        failed = sum(1 for r in results if not r.success)
        level = NoticeLevel.WARNING if failed else NoticeLevel.INFO
        message = f"Applied {len(results) - failed}/{len(results)} items"
        if failed:
            message += f" ({failed} failed)"
        self.emit(system_notice(level, message))
        return self._report(plan, started, results=results, approval=approval)

    async def _approve(self, plan: MutationPlan) -> str:
        if self.manager.can_auto_apply(plan):
            plan.auto_approved = True
            self.manager.transition_or_raise(ExecutionState.EXECUTING, plan)
            self.emit(system_notice(NoticeLevel.INFO, f"Auto-approved {len(plan.items)} item(s)"))
            return "auto"

        self.manager.transition_or_raise(ExecutionState.PENDING_CONFIRMATION, plan)
        text = TimelineRenderer(self.options).render_plan(plan)
        answer = str(await self.prompt.request(text, PLAN_OPTIONS)).strip().lower()
        LOGGER.debug("plan_confirmation", extra={"plan_id": plan.id, "answer": answer})

        if answer == "always":
            if not self.manager.enable_auto_approve(plan):
                self.emit(
                    system_notice(NoticeLevel.WARNING, "Auto-approve not enabled: plan contains HIGH risk items.")
                )
        elif answer != "yes":
            return "declined"

        self.manager.transition_or_raise(ExecutionState.EXECUTING, plan)
        return "user"

    async def _execute_item(self, item: MutationPlanItem) -> ExecutionResult:
        call = _tool_call_for(item)
        self.emit(tool_invocation(call))
        start = self.clock.now()
        try:
            outcome = await self.executor.execute(item)
        except Exception as e:
            LOGGER.warning("tool_execution_failed", extra={"tool": call.name, "target": item.target}, exc_info=True)
            outcome = ToolOutcome(success=False, error=str(e) or type(e).__name__)
        duration_ms = outcome.duration_ms or _elapsed_ms(self.clock, start)

        files = (item.target,) if outcome.success and item.type in _FILE_TYPES else ()
        self.emit(
            tool_result(
                call,
                success=outcome.success,
                output=outcome.output,
                error=outcome.error,
                duration_ms=duration_ms,
                files_affected=files,
            )
        )
        return ExecutionResult(
            item=item,
            success=outcome.success,
            output=outcome.output,
            error=outcome.error,
            duration_ms=duration_ms,
        )

    def _fail(
        self,
        plan: MutationPlan,
        started: float,
        *,
        results: list[ExecutionResult],
        approval: str,
        error: str,
    ) -> ExecutionReport:
        self.manager.transition(ExecutionState.ERROR, plan)
        self.emit(system_notice(NoticeLevel.ERROR, error))
        return self._report(plan, started, results=results, approval=approval, error=error)

    def _report(
        self,
        plan: MutationPlan,
        started: float,
        *,
        results: list[ExecutionResult],
        approval: str,
        error: str | None = None,
    ) -> ExecutionReport:
        return ExecutionReport(
            plan_id=plan.id,
            summary=plan.summary,
            results=tuple(results),
            duration_ms=_elapsed_ms(self.clock, started),
            state=self.manager.state,
            approval=approval,
            error=error,
        )
