from __future__ import annotations

import logging
import os
from typing import Iterable

from .config import SessionPolicy, TimelineConfig
from .events import (
    NoticeLevel,
    assistant_message,
    assistant_stage,
    system_notice,
    user_message,
)
from .execution import ExecutionStateManager
from .pipeline import TimelinePipeline
from .plan import ExecutionReport, MutationPlanBuilder
from .plan_runner import PlanRunner
from .risk import PatternRiskClassifier, RiskClassifier
from .status import ExecutionState
from .surface import ConfirmationPrompt, RenderSurface, ToolExecutor
from .tool_calls import ToolCall, plan_items_from_tool_calls

LOGGER = logging.getLogger(__name__)


class Turn:
    """One user message and the agent's work on it."""

    def __init__(self, session: "TurnSession", text: str) -> None:
        self.session = session
        self.text = text
        self.manager = ExecutionStateManager(policy=session.policy)
        self._buffer = ""

    @property
    def state(self) -> ExecutionState:
        return self.manager.state

    def stage(self, stage: str, description: str = "") -> bool:
        if self.manager.state is ExecutionState.IDLE:
            self.manager.transition(ExecutionState.THINKING)
        return self.session.pipeline.add_event(assistant_stage(stage, description))

    def stream_chunk(self, chunk: str) -> bool:
        self._buffer += chunk
        return self.session.pipeline.add_event(assistant_message(self._buffer))

    def finish_message(self, content: str | None = None, tool_calls: Iterable[ToolCall] = ()) -> bool:
        text = self._buffer if content is None else content
        self._buffer = ""
        return self.session.pipeline.add_event(assistant_message(text, tuple(tool_calls)))

    def notice(self, level: NoticeLevel | str, message: str) -> bool:
        return self.session.pipeline.add_event(system_notice(level, message))

    def fail(self, message: str) -> None:
        """Report an agent-side failure; the session stays usable."""

        if self.manager.state is ExecutionState.IDLE:
            self.manager.transition(ExecutionState.THINKING)
        self.manager.transition(ExecutionState.ERROR)
        self.notice(NoticeLevel.ERROR, message)

    async def propose(self, tool_calls: Iterable[ToolCall]) -> ExecutionReport | None:
        """
        Turn the agent's tool calls into one plan and run it.

        Returns None when none of the calls mutates anything.
        """

        session = self.session
        builder = MutationPlanBuilder(classifier=session.classifier)
        added = plan_items_from_tool_calls(
            tool_calls,
            builder,
            working_directory=session.working_directory,
            auto_apply_max_risk=session.config.auto_apply_max_risk,
        )
        if not added:
            return None

        if not self.manager.transition(ExecutionState.PLANNING):
            LOGGER.warning("plan_rejected", extra={"state": self.manager.state.value})
            self.notice(NoticeLevel.ERROR, f"Cannot plan changes while {self.manager.state.value}.")
            return None

        plan = builder.build()
        runner = PlanRunner(
            manager=self.manager,
            executor=session.executor,
            prompt=session.prompt,
            emit=session.pipeline.add_event,
            options=session.pipeline.render_options,
            stop_on_failure=session.stop_on_failure,
        )
        report = await runner.run(plan)
        LOGGER.info(
            "plan_finished",
            extra={"plan_id": plan.id, "state": report.state.value, "approval": report.approval},
        )
        return report


class TurnSession:
    """
    Owns the transcript pipeline and the session policy for a conversation.

    Each `begin_turn` gets a fresh execution state machine; the auto-approve and
    debug flags live on the shared `SessionPolicy`.
    """

    def __init__(
        self,
        surface: RenderSurface,
        executor: ToolExecutor,
        prompt: ConfirmationPrompt,
        *,
        config: TimelineConfig | None = None,
        policy: SessionPolicy | None = None,
        classifier: RiskClassifier | None = None,
        working_directory: str | None = None,
        stop_on_failure: bool = False,
        color: bool = False,
        pipeline: TimelinePipeline | None = None,
    ) -> None:
        self.config = config or TimelineConfig()
        self.policy = policy or SessionPolicy.from_config(self.config)
        self.pipeline = pipeline or TimelinePipeline(surface, config=self.config, policy=self.policy, color=color)
        self.executor = executor
        self.prompt = prompt
        self.classifier = classifier or PatternRiskClassifier()
        self.working_directory = working_directory or os.getcwd()
        self.stop_on_failure = stop_on_failure
        self._turn: Turn | None = None

    @property
    def current_turn(self) -> Turn | None:
        return self._turn

    def begin_turn(self, text: str) -> Turn:
        self.pipeline.add_event(user_message(text))
        self._turn = Turn(self, text)
        return self._turn

    def toggle_debug(self) -> bool:
        enabled = self.policy.toggle_debug()
        self.pipeline.rerender()
        return enabled

    def set_auto_approve(self, enabled: bool) -> None:
        self.policy.auto_approve = enabled

    def clear(self) -> None:
        self.pipeline.clear()

    def start(self) -> None:
        self.pipeline.start()

    def close(self) -> None:
        self.pipeline.stop()

    def __enter__(self) -> "TurnSession":
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
