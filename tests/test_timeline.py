from __future__ import annotations

from turnline.runtime.events import (
    Event,
    assistant_message,
    assistant_stage,
    diff_preview,
    system_notice,
    tool_invocation,
    tool_result,
    user_message,
)
from turnline.runtime.grouping import MessageGrouper
from turnline.runtime.plan import ExecutionReport, ExecutionResult, MutationPlanBuilder
from turnline.runtime.risk import MutationType
from turnline.runtime.status import ExecutionState
from turnline.runtime.tool_calls import ToolCall
from turnline.ui.timeline import RenderOptions, TimelineRenderer, render_plan, render_report

DIFF = "--- a/app.py\n+++ b/app.py\n@@ -1,2 +1,2 @@\n-return a - b\n+return a + b\n context"


def _groups(*events: Event):
    grouper = MessageGrouper()
    for i, ev in enumerate(events):
        grouper.process(ev.stamped(float(i)))
    return grouper.groups


def _turn():
    call = ToolCall(id="c1", name="bash", arguments={"command": "npm test"})
    return _groups(
        user_message("fix the bug"),
        assistant_stage("working", "npm test"),
        tool_invocation(call),
        tool_result(call, success=True, output="passed", duration_ms=1500),
        diff_preview("app.py", DIFF),
        system_notice("warning", "tests are slow"),
        assistant_message("Fixed the sign error."),
    )


def test_render_is_idempotent() -> None:
    renderer = TimelineRenderer()
    groups = _turn()

    assert renderer.render(groups, width=80) == renderer.render(groups, width=80)


def test_render_orders_assistant_sections() -> None:
    text = TimelineRenderer().render(_turn(), width=80)

    user = text.index("┌─ User")
    assistant = text.index("┌─ Assistant")
    stage = text.index("Executing: npm test...")
    tools = text.index("▸ Tool activity (1 operation)")
    diff = text.index("✎ app.py (+1 -1)")
    notice = text.index("! tests are slow")
    final = text.index("Fixed the sign error.")

    assert user < assistant < stage < tools < diff < notice < final
    assert "fix the bug" in text


def test_tool_activity_collapses_to_one_line_per_call() -> None:
    text = TimelineRenderer().render(_turn(), width=80)

    assert text.count("Ran: npm test") == 1
    assert "✓ Ran: npm test (1.5s)" in text


def test_tool_activity_header_counts_calls_not_events() -> None:
    first = ToolCall(id="c1", name="bash", arguments={"command": "npm test"})
    second = ToolCall(id="c2", name="read_file", arguments={"path": "README.md"})
    groups = _groups(
        user_message("check"),
        tool_invocation(first),
        tool_result(first, success=True),
        tool_invocation(second),
    )

    assert "▸ Tool activity (2 operations)" in TimelineRenderer().render(groups, width=80)
    assert "▸ Tool activity (3 operations)" in TimelineRenderer(RenderOptions(debug=True)).render(groups, width=80)


def test_failed_tool_shows_error() -> None:
    call = ToolCall(id="c9", name="edit_file", arguments={"path": "x.py"})
    groups = _groups(
        user_message("edit"),
        tool_invocation(call),
        tool_result(call, success=False, error="permission denied"),
    )

    text = TimelineRenderer().render(groups, width=80)

    assert "✗ Edited: x.py (failed; permission denied)" in text


def test_running_tool_has_pending_badge() -> None:
    call = ToolCall(id="c2", name="read_file", arguments={"path": "README.md"})
    text = TimelineRenderer().render(_groups(user_message("look"), tool_invocation(call)), width=80)

    assert "… Read: README.md (running)" in text


def test_user_only_group_has_no_assistant_block() -> None:
    text = TimelineRenderer().render(_groups(user_message("hello")), width=80)

    assert "┌─ User" in text
    assert "Assistant" not in text


def test_stacked_diff_below_min_width() -> None:
    text = TimelineRenderer().render(_turn(), width=80)

    assert "  -return a - b" in text
    assert "  +return a + b" in text
    assert "--- a/app.py" not in text
    assert "OLD (-)" not in text


def test_side_by_side_diff_at_min_width() -> None:
    text = TimelineRenderer(RenderOptions(side_by_side_min_width=100)).render(_turn(), width=120)

    assert "OLD (-)" in text
    assert "NEW (+)" in text
    assert "│return a - b" in text
    assert "│return a + b" in text


def test_long_diff_is_cut() -> None:
    body = "\n".join(f"+line {i}" for i in range(30))
    groups = _groups(user_message("big"), diff_preview("big.py", body))

    text = TimelineRenderer(RenderOptions(diff_max_lines=20)).render(groups, width=80)

    assert "+line 19" in text
    assert "+line 20" not in text
    assert "… 10 more lines" in text


def test_large_message_is_cut_by_lines() -> None:
    content = "\n".join(f"row {i}" for i in range(15))
    groups = _groups(user_message("dump"), assistant_message(content))

    text = TimelineRenderer(RenderOptions(large_content_lines=10)).render(groups, width=80)

    assert "row 9" in text
    assert "row 10" not in text
    assert "… 5 more lines" in text


def test_large_message_is_cut_by_chars() -> None:
    content = "\n".join("x" * 40 for _ in range(10))
    groups = _groups(user_message("dump"), assistant_message(content))

    text = TimelineRenderer(RenderOptions(large_content_chars=100)).render(groups, width=80)

    assert text.count("x" * 40) == 2
    assert "… 8 more lines" in text


def test_debug_mode_shows_ids_and_counts() -> None:
    groups = _turn()
    text = TimelineRenderer(RenderOptions(debug=True)).render(groups, width=80)

    assert text.startswith("[debug] groups=1 open=1 events=7")
    assert "[msg-0 open events=7]" in text
    assert groups[0].tool_activity[0].id in text
    assert "output:" in text
    assert "passed" in text


def test_color_is_optional() -> None:
    plain = TimelineRenderer().render(_turn(), width=80)
    colored = TimelineRenderer(RenderOptions(color=True)).render(_turn(), width=80)

    assert "\x1b[" not in plain
    assert "\x1b[" in colored


def test_stage_lines() -> None:
    for stage, expected in (
        ("preparing", "Analyzing your request..."),
        ("responding", "Crafting response..."),
        ("reviewing", "Double-checking"),
    ):
        description = "Double-checking" if stage == "reviewing" else ""
        groups = _groups(user_message("q"), assistant_stage(stage, description))
        assert expected in TimelineRenderer().render(groups, width=80)


def test_render_plan_lists_items_and_actions() -> None:
    builder = MutationPlanBuilder()
    builder.add_item(MutationType.PATCH_FILE, "src/app.py", "-a\n+b")
    builder.add_item(MutationType.RUN_BASH, "npm test", "npm test", working_directory="/repo")
    plan = builder.build()

    text = render_plan(plan)

    assert "1. Edit app.py" in text
    assert "Target: src/app.py" in text
    assert "Risk: LOW" in text
    assert "2. Run: npm test" in text
    assert "Command: npm test" in text
    assert "Directory: /repo" in text
    assert "Package manager operation" in text
    assert "[Y] Apply" in text


def test_render_plan_limits_items() -> None:
    builder = MutationPlanBuilder()
    for i in range(8):
        builder.add_item(MutationType.WRITE_FILE, f"f{i}.txt")

    text = render_plan(builder.build(), RenderOptions(plan_preview_max_items=6))

    assert "6. Write f5.txt" in text
    assert "Write f6.txt" not in text
    assert "+ 2 more items..." in text


def test_render_report_summarizes_results() -> None:
    builder = MutationPlanBuilder()
    ok_item = builder.add_item(MutationType.PATCH_FILE, "a.py")
    bad_item = builder.add_item(MutationType.RUN_BASH, "npm test")
    report = ExecutionReport(
        plan_id="plan_1",
        summary="",
        results=(
            ExecutionResult(item=ok_item, success=True, duration_ms=5),
            ExecutionResult(item=bad_item, success=False, error="exit 1"),
        ),
        duration_ms=10,
        state=ExecutionState.DONE,
        approval="user",
    )

    text = render_report(report)

    assert "✓ Edit a.py (5ms)" in text
    assert "✗ Run: npm test" in text
    assert "Error: exit 1" in text
    assert "Applied 1/2 items; state DONE" in text
