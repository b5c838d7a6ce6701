from __future__ import annotations

import asyncio

from turnline.runtime.config import TimelineConfig
from turnline.runtime.plan import MutationPlanItem
from turnline.runtime.session import TurnSession
from turnline.runtime.status import ExecutionState
from turnline.runtime.surface import ToolOutcome
from turnline.runtime.tool_calls import ToolCall


class FakeSurface:
    def __init__(self) -> None:
        self.blocks: list[str] = []

    def clear(self) -> None:
        self.blocks = []

    def append_block(self, text: str) -> None:
        self.blocks.append(text)

    def scroll_to_end(self) -> None:
        pass

    def current_width(self) -> int:
        return 80

    @property
    def text(self) -> str:
        return "\n".join(self.blocks)


class FakeExecutor:
    def __init__(self) -> None:
        self.executed: list[str] = []

    async def execute(self, item: MutationPlanItem) -> ToolOutcome:
        self.executed.append(item.target)
        return ToolOutcome(success=True, output="ok")


class FakePrompt:
    def __init__(self, answer: str = "yes") -> None:
        self.answer = answer
        self.calls = 0

    async def request(self, prompt_text: str, options) -> str:
        self.calls += 1
        return self.answer


def _session(**kwargs):
    surface = FakeSurface()
    executor = FakeExecutor()
    prompt = FakePrompt(kwargs.pop("answer", "yes"))
    session = TurnSession(surface, executor, prompt, working_directory="/repo", **kwargs)
    return session, surface, executor, prompt


FIX_CALLS = [
    ToolCall(
        id="call_edit",
        name="str_replace_editor",
        arguments={"path": "src/calc.py", "old_str": "a - b", "new_str": "a + b"},
    ),
    ToolCall(id="call_test", name="bash", arguments={"command": "npm test"}),
]


def test_turn_end_to_end() -> None:
    session, surface, executor, prompt = _session()

    turn = session.begin_turn("fix the bug in calc")
    turn.stage("preparing")
    turn.stream_chunk("Fixing ")
    turn.stream_chunk("the sign.")
    turn.finish_message()
    report = asyncio.run(turn.propose(FIX_CALLS))
    session.pipeline.flush_now()

    assert report is not None
    assert prompt.calls == 1
    assert executor.executed == ["src/calc.py", "npm test"]
    assert turn.state is ExecutionState.DONE
    text = surface.text
    assert "fix the bug in calc" in text
    assert "Fixing the sign." in text
    assert "✎ src/calc.py (+1 -1)" in text
    assert "✓ Ran: npm test" in text
    assert "Applied 2/2 items" in text


def test_stream_chunks_accumulate() -> None:
    session, _, _, _ = _session()
    turn = session.begin_turn("hi")

    turn.stream_chunk("Hel")
    turn.stream_chunk("lo")
    session.pipeline.flush_now()

    group = session.pipeline.groups[-1]
    assert group.assistant_message.content == "Hello"


def test_read_only_calls_produce_no_plan() -> None:
    session, _, executor, prompt = _session()
    turn = session.begin_turn("look around")

    report = asyncio.run(turn.propose([ToolCall(id="r", name="read_file", arguments={"path": "a.py"})]))

    assert report is None
    assert prompt.calls == 0
    assert executor.executed == []
    assert turn.state is ExecutionState.IDLE


def test_auto_approve_carries_across_turns() -> None:
    session, _, executor, prompt = _session(answer="always")

    asyncio.run(session.begin_turn("first").propose(FIX_CALLS))
    asyncio.run(session.begin_turn("second").propose(FIX_CALLS))

    assert prompt.calls == 1
    assert len(executor.executed) == 4
    assert session.policy.auto_approve is True


def test_config_auto_approve_applies_from_the_start() -> None:
    session, _, executor, prompt = _session(config=TimelineConfig(auto_approve=True))

    report = asyncio.run(session.begin_turn("go").propose(FIX_CALLS))

    assert prompt.calls == 0
    assert report is not None and report.approval == "auto"


def test_fail_renders_error_notice() -> None:
    session, surface, _, _ = _session()
    turn = session.begin_turn("hi")

    turn.fail("model unavailable")
    session.pipeline.flush_now()

    assert turn.state is ExecutionState.ERROR
    assert "✗ model unavailable" in surface.text


def test_toggle_debug_rerenders() -> None:
    session, surface, _, _ = _session()
    session.begin_turn("hi")
    session.pipeline.flush_now()

    assert session.toggle_debug() is True
    assert surface.text.startswith("[debug]")
