from __future__ import annotations

import pytest

from turnline.runtime.errors import ProtocolError
from turnline.runtime.events import (
    AssistantMessage,
    DiffPreview,
    Event,
    EventType,
    NoticeLevel,
    ToolResult,
    ToolStatus,
    diff_counts,
    diff_preview,
    event_from_dict,
    tool_invocation,
    user_message,
)
from turnline.runtime.tool_calls import ToolCall


def test_constructors_assign_unique_ids_and_no_timestamp() -> None:
    a = user_message("hi")
    b = user_message("hi")

    assert a.id != b.id
    assert a.id.startswith("evt_")
    assert a.timestamp is None
    assert a.type is EventType.USER_MESSAGE


def test_stamped_returns_a_copy() -> None:
    ev = tool_invocation(ToolCall(id="c1", name="bash", arguments={"command": "ls"}))
    stamped = ev.stamped(12.5)

    assert stamped.timestamp == 12.5
    assert ev.timestamp is None
    assert stamped.id == ev.id
    assert stamped.data is ev.data


def test_event_rejects_unknown_payload() -> None:
    with pytest.raises(ProtocolError):
        Event(data={"content": "x"})  # type: ignore[arg-type]


def test_diff_counts_skips_file_headers() -> None:
    diff = "--- a/x.py\n+++ b/x.py\n@@ -1,2 +1,2 @@\n-old\n+new\n+extra\n ctx"

    assert diff_counts(diff) == (2, 1)
    assert diff_counts(None) == (0, 0)


def test_diff_preview_counts_lines_when_not_given() -> None:
    ev = diff_preview("src/app.py", "-a\n+b\n+c")

    assert isinstance(ev.data, DiffPreview)
    assert (ev.data.added, ev.data.removed) == (2, 1)


def test_tool_call_accepts_json_string_arguments() -> None:
    call = ToolCall.from_openai(
        {"id": "call_1", "function": {"name": "bash", "arguments": '{"command": "npm test"}'}}
    )

    assert call.name == "bash"
    assert call.command == "npm test"


def test_tool_call_rejects_non_object_arguments() -> None:
    with pytest.raises(ValueError):
        ToolCall(id="c", name="bash", arguments="[1, 2]")


def test_event_from_dict_parses_tool_result() -> None:
    ev = event_from_dict(
        {
            "id": "evt-7",
            "type": "tool_result",
            "data": {
                "tool_call": {"id": "c1", "name": "edit_file", "arguments": {"path": "a.py"}},
                "success": False,
                "error": "permission denied",
                "duration_ms": 12,
                "files_affected": ["a.py"],
            },
        }
    )

    assert ev.id == "evt-7"
    assert isinstance(ev.data, ToolResult)
    assert ev.data.success is False
    assert ev.data.error == "permission denied"
    assert ev.data.files_affected == ("a.py",)


def test_event_from_dict_parses_assistant_tool_calls() -> None:
    ev = event_from_dict(
        {
            "type": "assistant_message",
            "data": {
                "content": "Running tests",
                "tool_calls": [{"id": "c1", "function": {"name": "bash", "arguments": '{"command": "ls"}'}}],
            },
        }
    )

    assert isinstance(ev.data, AssistantMessage)
    assert ev.data.tool_calls[0].command == "ls"


def test_event_from_dict_defaults() -> None:
    inv = event_from_dict({"type": "tool_invocation", "data": {"tool_call": {"id": "c", "name": "bash"}}})
    notice = event_from_dict({"type": "system_notice", "data": {"message": "hello"}})

    assert inv.data.status is ToolStatus.RUNNING
    assert notice.data.level is NoticeLevel.INFO


@pytest.mark.parametrize(
    "raw",
    [
        {"type": "telemetry", "data": {}},
        {"type": "user_message"},
        {"type": "user_message", "data": {"content": 3}},
        {"type": "tool_result", "data": {"success": True}},
        {"type": "tool_invocation", "data": {"tool_call": {"id": "", "name": "bash"}}},
        {"type": "system_notice", "data": {"level": "fatal", "message": "x"}},
        "not-a-dict",
    ],
)
def test_event_from_dict_raises_protocol_error(raw) -> None:
    with pytest.raises(ProtocolError):
        event_from_dict(raw)
