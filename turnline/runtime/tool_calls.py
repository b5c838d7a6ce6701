from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .risk import MutationType, RiskLevel

if TYPE_CHECKING:
    from .plan import MutationPlanBuilder


FILE_CREATE_TOOLS = frozenset({"create_file", "write_file"})
FILE_EDIT_TOOLS = frozenset({"str_replace_editor", "edit_file", "apply_patch"})
SHELL_TOOLS = frozenset({"bash", "shell", "run_command"})
READ_ONLY_TOOLS = frozenset(
    {"view_file", "read_file", "search", "list_dir", "glob", "create_todo_list", "update_todo_list"}
)


def _elide_tail(s: str, max_chars: int) -> str:
    if max_chars <= 0:
        return ""
    if len(s) <= max_chars:
        return s
    return s[: max(0, max_chars - 1)].rstrip() + "…"


def _one_line(text: str) -> str:
    return " ".join(str(text).split())


class ToolCall(BaseModel):
    """A tool call requested by the agent, correlated across invocation/result events by `id`."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", "name")
    @classmethod
    def _validate_non_empty(cls, v: str) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("must be a non-empty string.")
        return v.strip()

    @field_validator("arguments", mode="before")
    @classmethod
    def _parse_arguments(cls, v: Any) -> Any:
        if v is None:
            return {}
        if isinstance(v, str):
            if not v.strip():
                return {}
            try:
                parsed = json.loads(v)
            except json.JSONDecodeError as e:
                raise ValueError(f"arguments is not valid JSON: {e.msg}") from e
            if not isinstance(parsed, dict):
                raise ValueError("arguments must decode to a JSON object.")
            return parsed
        return v

    @classmethod
    def from_openai(cls, raw: dict[str, Any]) -> "ToolCall":
        """Accept the chat-completions shape: {"id", "function": {"name", "arguments"}}."""

        fn = raw.get("function")
        if isinstance(fn, dict):
            return cls(id=raw.get("id") or "", name=fn.get("name") or "", arguments=fn.get("arguments"))
        return cls.model_validate(raw)

    def arg_str(self, *keys: str) -> str | None:
        for key in keys:
            value = self.arguments.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None

    @property
    def file_path(self) -> str | None:
        return self.arg_str("path", "file_path", "target_file")

    @property
    def command(self) -> str | None:
        return self.arg_str("command", "cmd")


def summarize_tool_call(call: ToolCall, *, max_chars: int = 100) -> str:
    if call.name in SHELL_TOOLS:
        command = call.command
        if command is None:
            return "Ran shell command"
        return "Ran: " + _elide_tail(_one_line(command), max_chars)
    if call.name in FILE_EDIT_TOOLS:
        return f"Edited: {call.file_path or '?'}"
    if call.name in FILE_CREATE_TOOLS:
        return f"Created: {call.file_path or '?'}"
    if call.name in {"view_file", "read_file"}:
        return f"Read: {call.file_path or '?'}"
    if call.name == "search":
        query = call.arg_str("query")
        return f'Search: "{_elide_tail(query, max_chars)}"' if query else "Search"
    if call.name.startswith("mcp__"):
        return f"MCP: {call.name[5:]}"
    return call.name


def _edit_preview(call: ToolCall) -> str:
    old = call.arguments.get("old_str")
    new = call.arguments.get("new_str")
    if isinstance(old, str) or isinstance(new, str):
        lines = [f"-{line}" for line in str(old or "").splitlines()]
        lines.extend(f"+{line}" for line in str(new or "").splitlines())
        return "\n".join(lines)
    for key in ("code_edit", "patch", "diff", "instructions"):
        value = call.arguments.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return ""


def mutation_for_tool_call(call: ToolCall) -> tuple[MutationType, str, str] | None:
    """Map an agent tool call to (type, target, preview); None for read-only tools."""

    if call.name in READ_ONLY_TOOLS:
        return None
    if call.name in FILE_CREATE_TOOLS:
        content = call.arguments.get("content")
        return MutationType.WRITE_FILE, call.file_path or call.name, content if isinstance(content, str) else ""
    if call.name in FILE_EDIT_TOOLS:
        return MutationType.PATCH_FILE, call.file_path or call.name, _edit_preview(call)
    if call.name in SHELL_TOOLS:
        command = call.command or ""
        kind = MutationType.GIT_OP if command.split()[:1] == ["git"] else MutationType.RUN_BASH
        return kind, command or call.name, command
    return MutationType.OTHER, call.name, json.dumps(call.arguments, ensure_ascii=False, sort_keys=True)


def plan_items_from_tool_calls(
    tool_calls: Iterable[ToolCall],
    builder: "MutationPlanBuilder",
    *,
    working_directory: str | None = None,
    auto_apply_max_risk: RiskLevel = RiskLevel.MED,
) -> int:
    """
    Add one plan item per mutating tool call, in the order the agent proposed them.

    Returns the number of items added.
    """

    added = 0
    for call in tool_calls:
        mapped = mutation_for_tool_call(call)
        if mapped is None:
            continue
        kind, target, preview = mapped
        risk = builder.classifier.classify(kind, target)
        builder.add_item(
            kind,
            target,
            preview,
            tool_call=call,
            working_directory=working_directory if kind in {MutationType.RUN_BASH, MutationType.GIT_OP} else None,
            can_auto_apply=risk.rank <= auto_apply_max_risk.rank,
        )
        added += 1
    return added
