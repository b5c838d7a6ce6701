from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from ..runtime.config import TimelineConfig
from ..runtime.events import (
    AssistantStage,
    DiffPreview,
    Event,
    NoticeLevel,
    SystemNotice,
    ToolInvocation,
    ToolResult,
    ToolStatus,
)
from ..runtime.grouping import MessageGroup
from ..runtime.plan import ExecutionReport, MutationPlan
from ..runtime.risk import MutationType, RiskLevel
from ..runtime.tool_calls import summarize_tool_call

BOX_TOP = "┌─ "
BOX_SIDE = "│  "
BOX_BOTTOM = "└" + "─" * 26
ELLIPSIS = "…"

_NOTICE_COLORS = {NoticeLevel.ERROR: "31", NoticeLevel.WARNING: "33", NoticeLevel.INFO: "32"}
_NOTICE_ICONS = {NoticeLevel.ERROR: "✗", NoticeLevel.WARNING: "!", NoticeLevel.INFO: "i"}
_RISK_COLORS = {RiskLevel.HIGH: "1;31", RiskLevel.MED: "1;33", RiskLevel.LOW: "1;32"}

PLAN_ACTIONS_HINT = "[Y] Apply  [N] Cancel  [A] Apply all (session)"


@dataclass(frozen=True, slots=True)
class RenderOptions:
    debug: bool = False
    color: bool = False
    assistant_label: str = "Assistant"
    side_by_side_min_width: int = 100
    large_content_chars: int = 50_000
    large_content_lines: int = 1000
    diff_max_lines: int = 20
    plan_preview_max_items: int = 6

    @classmethod
    def from_config(cls, config: TimelineConfig, *, debug: bool | None = None, color: bool = False) -> "RenderOptions":
        return cls(
            debug=config.debug if debug is None else debug,
            color=color,
            side_by_side_min_width=config.side_by_side_min_width,
            large_content_chars=config.large_content_chars,
            large_content_lines=config.large_content_lines,
            diff_max_lines=config.diff_max_lines,
            plan_preview_max_items=config.plan_preview_max_items,
        )


def _elide_tail(s: str, max_chars: int) -> str:
    if max_chars <= 0:
        return ""
    if len(s) <= max_chars:
        return s
    return s[: max(0, max_chars - 1)].rstrip() + ELLIPSIS


def _one_line(text: str) -> str:
    return " ".join(str(text).split())


def _more_lines(n: int) -> str:
    return f"{ELLIPSIS} {n} more line{'s' if n != 1 else ''}"


def _activity_header(n: int) -> str:
    return f"▸ Tool activity ({n} operation{'s' if n != 1 else ''})"


def truncate_lines(text: str, *, max_lines: int, max_chars: int | None = None) -> tuple[list[str], int]:
    """
    Keep leading lines within both budgets.

    Returns (kept_lines, hidden_line_count). A first line longer than `max_chars`
    is kept but elided.
    """

    lines = str(text).splitlines()
    kept: list[str] = []
    used = 0
    for line in lines[:max_lines]:
        if max_chars is not None and used + len(line) > max_chars:
            if not kept:
                kept.append(_elide_tail(line, max_chars))
            break
        kept.append(line)
        used += len(line) + 1
    return kept, len(lines) - len(kept)


def stage_line(stage: AssistantStage) -> str:
    if stage.stage == "preparing":
        return "Analyzing your request..."
    if stage.stage == "responding":
        return "Crafting response..."
    if stage.stage == "working":
        return f"Executing: {stage.description}..." if stage.description else "Working..."
    return stage.description or stage.stage


def _format_duration(duration_ms: int | None) -> str | None:
    if duration_ms is None or duration_ms <= 0:
        return None
    if duration_ms >= 1000:
        return f"{duration_ms / 1000:.1f}s"
    return f"{duration_ms}ms"


class TimelineRenderer:
    """
    Pure formatter: group list in, transcript text out.

    Holds no state besides its options, so rendering the same groups twice yields
    identical text.
    """

    def __init__(self, options: RenderOptions | None = None) -> None:
        self.options = options or RenderOptions()

    def _color(self, text: str, code: str) -> str:
        if not self.options.color:
            return text
        return f"\x1b[{code}m{text}\x1b[0m"

    def _dim(self, text: str) -> str:
        return self._color(text, "2")

    # --- transcript ---
    def render(self, groups: Sequence[MessageGroup], *, width: int = 80) -> str:
        out: list[str] = []
        if self.options.debug:
            total = sum(g.event_count for g in groups)
            open_count = sum(1 for g in groups if not g.completed)
            out.append(self._dim(f"[debug] groups={len(groups)} open={open_count} events={total}"))
            out.append("")
        for i, group in enumerate(groups):
            if i:
                out.append("")
            out.extend(self.render_group(group, width=width))
        return "\n".join(out)

    def render_group(self, group: MessageGroup, *, width: int = 80) -> list[str]:
        lines: list[str] = []
        opts = self.options

        user_header = BOX_TOP + self._color("User", "1;36")
        if opts.debug:
            state = "closed" if group.completed else "open"
            user_header += self._dim(f" [{group.id} {state} events={group.event_count}]")
        lines.append(user_header)
        content = group.user_message.content
        if opts.debug and group.user_event_id:
            content = f"[{group.user_event_id}] {content}"
        lines.extend(self._boxed_text(content))
        lines.append(BOX_BOTTOM)

        if not group.has_assistant_content:
            return lines

        body: list[list[str]] = []
        if group.assistant_stage is not None:
            body.append([self._color(stage_line(group.assistant_stage), "33")])
        if group.tool_activity:
            body.append(self._tool_activity(group.tool_activity))
        for diff in group.diff_previews:
            body.append(self._diff_block(diff, width=width))
        if group.system_notices:
            body.append([self._notice_line(n) for n in group.system_notices])
        if group.assistant_message is not None and group.assistant_message.content.strip():
            text, hidden = truncate_lines(
                group.assistant_message.content,
                max_lines=opts.large_content_lines,
                max_chars=opts.large_content_chars,
            )
            section = list(text)
            if hidden:
                section.append(self._dim(_more_lines(hidden)))
            body.append(section)

        lines.append(BOX_TOP + self._color(opts.assistant_label, "1;35"))
        for j, section in enumerate(body):
            if j:
                lines.append(BOX_SIDE.rstrip())
            lines.extend(BOX_SIDE + s for s in section)
        lines.append(BOX_BOTTOM)
        return lines

    def _boxed_text(self, text: str) -> list[str]:
        kept, hidden = truncate_lines(
            text,
            max_lines=self.options.large_content_lines,
            max_chars=self.options.large_content_chars,
        )
        out = [BOX_SIDE + line for line in kept] or [BOX_SIDE.rstrip()]
        if hidden:
            out.append(BOX_SIDE + self._dim(_more_lines(hidden)))
        return out

    # --- tool activity ---
    def _tool_activity(self, activity: list[Event]) -> list[str]:
        if self.options.debug:
            lines = [_activity_header(len(activity))]
            for ev in activity:
                lines.extend("  " + s for s in self._tool_event_detail(ev))
            return lines

        # Collapse invocation/result pairs to one line per tool call, in first-seen order.
        latest: dict[str, Event] = {}
        for ev in activity:
            latest[ev.data.tool_call.id] = ev  # type: ignore[union-attr]
        lines = [_activity_header(len(latest))]
        for ev in latest.values():
            lines.append("  " + self._tool_status_line(ev))
        return lines

    def _tool_badge(self, ok: bool | None) -> str:
        if ok is None:
            return self._color("…", "36")
        return self._color("✓", "32") if ok else self._color("✗", "31")

    def _tool_status_line(self, ev: Event) -> str:
        data = ev.data
        suffix_parts: list[str] = []
        if isinstance(data, ToolResult):
            ok: bool | None = data.success
            duration = _format_duration(data.duration_ms)
            if duration:
                suffix_parts.append(duration)
            if not data.success:
                suffix_parts.append("failed")
                if data.error:
                    suffix_parts.append(_elide_tail(_one_line(data.error), 120))
        else:
            assert isinstance(data, ToolInvocation)
            ok = None if data.status is ToolStatus.RUNNING else data.status is ToolStatus.COMPLETED
            duration = _format_duration(data.duration_ms)
            if duration:
                suffix_parts.append(duration)
            if data.status is ToolStatus.RUNNING:
                suffix_parts.append("running")
        suffix = f" ({'; '.join(suffix_parts)})" if suffix_parts else ""
        return f"{self._tool_badge(ok)} {summarize_tool_call(data.tool_call)}{suffix}"

    def _tool_event_detail(self, ev: Event) -> list[str]:
        data = ev.data
        head = f"[{ev.id}] {ev.type.value} {data.tool_call.name}"  # type: ignore[union-attr]
        if isinstance(data, ToolInvocation):
            duration = _format_duration(data.duration_ms)
            return [f"{head} -> {data.status.value}" + (f" ({duration})" if duration else "")]
        assert isinstance(data, ToolResult)
        status = "ok" if data.success else "failed"
        duration = _format_duration(data.duration_ms)
        out = [f"{head} -> {status}" + (f" ({duration})" if duration else "")]
        if data.tool_call.arguments:
            out.append(f"  args: {_elide_tail(_one_line(str(data.tool_call.arguments)), 160)}")
        for label, text in (("output", data.output), ("error", data.error)):
            if not text:
                continue
            kept, hidden = truncate_lines(text, max_lines=self.options.diff_max_lines)
            out.append(f"  {label}:")
            out.extend("    " + line for line in kept)
            if hidden:
                out.append("    " + self._dim(_more_lines(hidden)))
        if data.files_affected:
            out.append("  files: " + ", ".join(data.files_affected))
        return out

    # --- diffs ---
    def _diff_block(self, diff: DiffPreview, *, width: int) -> list[str]:
        header = self._color(f"✎ {diff.file_path}", "1;33") + f" (+{diff.added} -{diff.removed})"
        lines = [header]
        if not diff.diff:
            return lines
        body = [ln for ln in diff.diff.splitlines() if not (ln.startswith("--- ") or ln.startswith("+++ "))]
        max_lines = self.options.diff_max_lines
        shown, hidden = body[:max_lines], max(0, len(body) - max_lines)
        if width >= self.options.side_by_side_min_width:
            lines.extend(self._side_by_side(shown, width=width))
        else:
            lines.extend(self._stacked(shown))
        if hidden:
            lines.append("  " + self._dim(_more_lines(hidden)))
        return lines

    def _diff_line_color(self, line: str) -> str:
        if line.startswith("+"):
            return self._color(line, "32")
        if line.startswith("-"):
            return self._color(line, "31")
        if line.startswith("@@"):
            return self._color(line, "35")
        return line

    def _stacked(self, lines: Iterable[str]) -> list[str]:
        return ["  " + self._diff_line_color(line) for line in lines]

    def _side_by_side(self, lines: list[str], *, width: int) -> list[str]:
        old_col: list[str] = []
        new_col: list[str] = []
        for line in lines:
            if line.startswith("-"):
                old_col.append(line[1:])
                new_col.append("")
            elif line.startswith("+"):
                old_col.append("")
                new_col.append(line[1:])
            else:
                ctx = line[1:] if line.startswith(" ") else line
                old_col.append(ctx)
                new_col.append(ctx)

        # Two bordered columns plus the box prefix must fit the surface width.
        max_col = max(10, (width - len(BOX_SIDE) - 7) // 2)
        longest = max((len(s) for s in old_col + new_col), default=0)
        col = max(9, min(longest + 2, max_col))

        def _cell(s: str) -> str:
            return _elide_tail(s, col - 1).ljust(col)

        def _title(s: str) -> str:
            return s.center(col)

        out = [
            f"  ┌{'─' * col}┐ ┌{'─' * col}┐",
            f"  │{self._color(_title('OLD (-)'), '31')}│ │{self._color(_title('NEW (+)'), '32')}│",
            f"  ├{'─' * col}┤ ├{'─' * col}┤",
        ]
        for old, new in zip(old_col, new_col):
            old_cell = _cell(old)
            new_cell = _cell(new)
            if old and old != new:
                old_cell = self._color(old_cell, "31")
            if new and old != new:
                new_cell = self._color(new_cell, "32")
            out.append(f"  │{old_cell}│ │{new_cell}│")
        out.append(f"  └{'─' * col}┘ └{'─' * col}┘")
        return out

    # --- notices ---
    def _notice_line(self, notice: SystemNotice) -> str:
        icon = _NOTICE_ICONS.get(notice.level, "i")
        return self._color(f"{icon} {notice.message}", _NOTICE_COLORS.get(notice.level, "37"))

    # --- plan / report ---
    def render_plan(self, plan: MutationPlan) -> str:
        lines = [self._color("Ready to apply changes", "1;33"), self._dim(f"Plan: {plan.id}")]
        if plan.summary:
            lines.append(self._dim(plan.summary))
        lines.append("")

        max_items = self.options.plan_preview_max_items
        for i, item in enumerate(plan.items[:max_items], start=1):
            lines.append(f"{self._color(f'{i}.', '1;33')} {item.label}")
            lines.append(f"   {self._dim('Target:')} {item.target}")
            lines.append(f"   {self._dim('Risk:')} {self._color(item.risk.value, _RISK_COLORS[item.risk])}")
            if item.type in {MutationType.WRITE_FILE, MutationType.PATCH_FILE}:
                if item.preview:
                    lines.append(f"   {self._dim('Preview:')}")
                    kept, hidden = truncate_lines(item.preview, max_lines=5)
                    lines.extend("     " + self._diff_line_color(line) for line in kept)
                    if hidden:
                        lines.append("     " + self._dim(_more_lines(hidden)))
            elif item.command_preview is not None:
                lines.append(f"   {self._dim('Command:')} {item.command_preview.preview}")
                for detail in item.command_preview.details:
                    if detail.startswith("Risk Level:"):
                        continue
                    lines.append(f"   {self._dim(detail)}")
            elif item.preview:
                lines.append(f"   {self._dim('Details:')} {_elide_tail(_one_line(item.preview), 120)}")
            lines.append("")

        if len(plan.items) > max_items:
            lines.append(self._dim(f"+ {len(plan.items) - max_items} more items..."))
            lines.append("")
        lines.append(f"{self._color('Actions:', '1;33')} {PLAN_ACTIONS_HINT}")
        return "\n".join(lines)

    def render_report(self, report: ExecutionReport) -> str:
        total = len(report.results)
        lines = [self._color("Execution report", "1;33")]
        if report.approval == "declined":
            lines.append(self._dim("Plan cancelled; nothing was applied."))
            return "\n".join(lines)
        for res in report.results:
            duration = _format_duration(res.duration_ms)
            suffix = f" ({duration})" if duration else ""
            lines.append(f"{self._tool_badge(res.success)} {res.item.label}{suffix}")
            if not res.success and res.error:
                lines.append("   " + self._color(f"Error: {_elide_tail(_one_line(res.error), 160)}", "31"))
        approval = " (auto-approved)" if report.approval == "auto" else ""
        lines.append(
            self._dim(f"Applied {report.succeeded}/{total} item{'s' if total != 1 else ''}{approval}; state {report.state.value}")
        )
        if report.error:
            lines.append(self._color(f"Error: {_one_line(report.error)}", "31"))
        return "\n".join(lines)


def render_plan(plan: MutationPlan, options: RenderOptions | None = None) -> str:
    return TimelineRenderer(options).render_plan(plan)


def render_report(report: ExecutionReport, options: RenderOptions | None = None) -> str:
    return TimelineRenderer(options).render_report(report)
