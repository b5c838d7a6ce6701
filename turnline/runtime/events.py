from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any, ClassVar, Union

from pydantic import ValidationError

from .errors import ProtocolError
from .ids import new_id
from .tool_calls import ToolCall


class EventType(StrEnum):
    USER_MESSAGE = "user_message"
    ASSISTANT_MESSAGE = "assistant_message"
    ASSISTANT_STAGE = "assistant_stage"
    TOOL_INVOCATION = "tool_invocation"
    TOOL_RESULT = "tool_result"
    DIFF_PREVIEW = "diff_preview"
    SYSTEM_NOTICE = "system_notice"


class ToolStatus(StrEnum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class NoticeLevel(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class UserMessage:
    kind: ClassVar[EventType] = EventType.USER_MESSAGE
    content: str


@dataclass(frozen=True, slots=True)
class AssistantMessage:
    kind: ClassVar[EventType] = EventType.ASSISTANT_MESSAGE
    content: str
    tool_calls: tuple[ToolCall, ...] = ()


@dataclass(frozen=True, slots=True)
class AssistantStage:
    kind: ClassVar[EventType] = EventType.ASSISTANT_STAGE
    stage: str
    description: str = ""


@dataclass(frozen=True, slots=True)
class ToolInvocation:
    kind: ClassVar[EventType] = EventType.TOOL_INVOCATION
    tool_call: ToolCall
    status: ToolStatus = ToolStatus.RUNNING
    duration_ms: int | None = None


@dataclass(frozen=True, slots=True)
class ToolResult:
    kind: ClassVar[EventType] = EventType.TOOL_RESULT
    tool_call: ToolCall
    success: bool
    output: str | None = None
    error: str | None = None
    duration_ms: int = 0
    files_affected: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class DiffPreview:
    kind: ClassVar[EventType] = EventType.DIFF_PREVIEW
    file_path: str
    added: int = 0
    removed: int = 0
    diff: str | None = None


@dataclass(frozen=True, slots=True)
class SystemNotice:
    kind: ClassVar[EventType] = EventType.SYSTEM_NOTICE
    level: NoticeLevel
    message: str


EventData = Union[UserMessage, AssistantMessage, AssistantStage, ToolInvocation, ToolResult, DiffPreview, SystemNotice]

PAYLOAD_TYPES: dict[EventType, type] = {
    EventType.USER_MESSAGE: UserMessage,
    EventType.ASSISTANT_MESSAGE: AssistantMessage,
    EventType.ASSISTANT_STAGE: AssistantStage,
    EventType.TOOL_INVOCATION: ToolInvocation,
    EventType.TOOL_RESULT: ToolResult,
    EventType.DIFF_PREVIEW: DiffPreview,
    EventType.SYSTEM_NOTICE: SystemNotice,
}


@dataclass(frozen=True, slots=True)
class Event:
    """
    One transcript entry.

    `timestamp` stays None until the deduplicator accepts the event; it is the
    acceptance time in seconds on the pipeline clock.
    """

    data: EventData
    id: str = field(default_factory=lambda: new_id("evt"))
    timestamp: float | None = None

    def __post_init__(self) -> None:
        if type(self.data) not in PAYLOAD_TYPES.values():
            raise ProtocolError(
                f"Unsupported event payload: {type(self.data).__name__}",
                event_type=getattr(self.data, "kind", None),
            )

    @property
    def type(self) -> EventType:
        return self.data.kind

    def stamped(self, timestamp: float) -> "Event":
        return replace(self, timestamp=timestamp)


def diff_counts(diff_text: str | None) -> tuple[int, int]:
    adds = 0
    dels = 0
    for line in str(diff_text or "").splitlines():
        if line.startswith("+++ ") or line.startswith("--- "):
            continue
        if line.startswith("+"):
            adds += 1
        elif line.startswith("-"):
            dels += 1
    return adds, dels


# --- constructors ---


def user_message(content: str) -> Event:
    return Event(UserMessage(content=str(content)))


def assistant_message(content: str, tool_calls: tuple[ToolCall, ...] | list[ToolCall] = ()) -> Event:
    return Event(AssistantMessage(content=str(content), tool_calls=tuple(tool_calls)))


def assistant_stage(stage: str, description: str = "") -> Event:
    return Event(AssistantStage(stage=stage, description=description))


def tool_invocation(
    tool_call: ToolCall,
    *,
    status: ToolStatus = ToolStatus.RUNNING,
    duration_ms: int | None = None,
) -> Event:
    return Event(ToolInvocation(tool_call=tool_call, status=ToolStatus(status), duration_ms=duration_ms))


def tool_result(
    tool_call: ToolCall,
    *,
    success: bool,
    output: str | None = None,
    error: str | None = None,
    duration_ms: int = 0,
    files_affected: tuple[str, ...] | list[str] = (),
) -> Event:
    return Event(
        ToolResult(
            tool_call=tool_call,
            success=bool(success),
            output=output,
            error=error,
            duration_ms=int(duration_ms),
            files_affected=tuple(files_affected),
        )
    )


def diff_preview(file_path: str, diff: str | None = None, *, added: int | None = None, removed: int | None = None) -> Event:
    if added is None or removed is None:
        counted_adds, counted_dels = diff_counts(diff)
        added = counted_adds if added is None else added
        removed = counted_dels if removed is None else removed
    return Event(DiffPreview(file_path=file_path, added=added, removed=removed, diff=diff))


def system_notice(level: NoticeLevel | str, message: str) -> Event:
    return Event(SystemNotice(level=NoticeLevel(level), message=str(message)))


# --- loose input ---


def _require_str(data: dict[str, Any], key: str, *, event_type: str, default: str | None = None) -> str:
    value = data.get(key, default)
    if not isinstance(value, str):
        raise ProtocolError(f"{event_type}.{key} must be a string.", event_type=event_type)
    return value


def _parse_tool_call(data: dict[str, Any], *, event_type: str) -> ToolCall:
    raw = data.get("tool_call") or data.get("toolCall")
    if isinstance(raw, ToolCall):
        return raw
    if not isinstance(raw, dict):
        raise ProtocolError(f"{event_type}.tool_call must be an object.", event_type=event_type)
    try:
        return ToolCall.from_openai(raw)
    except ValidationError as e:
        raise ProtocolError(f"{event_type}.tool_call is invalid: {e.errors()[0]['msg']}", event_type=event_type) from e


def event_from_dict(raw: dict[str, Any]) -> Event:
    """
    Parse the loosely-typed `{"type", "data"}` shape emitted by agent adapters.

    Raises ProtocolError for unknown types and malformed payloads.
    """

    if not isinstance(raw, dict):
        raise ProtocolError("Event must be an object.")
    raw_type = raw.get("type")
    try:
        et = EventType(raw_type)
    except ValueError as e:
        raise ProtocolError(f"Unknown event type: {raw_type!r}", event_type=str(raw_type)) from e

    data = raw.get("data")
    if not isinstance(data, dict):
        raise ProtocolError(f"{et.value}.data must be an object.", event_type=et.value)

    try:
        payload: EventData
        if et is EventType.USER_MESSAGE:
            payload = UserMessage(content=_require_str(data, "content", event_type=et.value))
        elif et is EventType.ASSISTANT_MESSAGE:
            calls_raw = data.get("tool_calls") or data.get("toolCalls") or []
            if not isinstance(calls_raw, list):
                raise ProtocolError("assistant_message.tool_calls must be a list.", event_type=et.value)
            calls = tuple(_parse_tool_call({"tool_call": c}, event_type=et.value) for c in calls_raw)
            payload = AssistantMessage(content=_require_str(data, "content", event_type=et.value), tool_calls=calls)
        elif et is EventType.ASSISTANT_STAGE:
            payload = AssistantStage(
                stage=_require_str(data, "stage", event_type=et.value),
                description=_require_str(data, "description", event_type=et.value, default=""),
            )
        elif et is EventType.TOOL_INVOCATION:
            duration = data.get("duration_ms", data.get("duration"))
            payload = ToolInvocation(
                tool_call=_parse_tool_call(data, event_type=et.value),
                status=ToolStatus(data.get("status") or ToolStatus.RUNNING),
                duration_ms=int(duration) if duration is not None else None,
            )
        elif et is EventType.TOOL_RESULT:
            files = data.get("files_affected") or data.get("filesAffected") or []
            payload = ToolResult(
                tool_call=_parse_tool_call(data, event_type=et.value),
                success=bool(data.get("success", False)),
                output=data.get("output") if isinstance(data.get("output"), str) else None,
                error=data.get("error") if isinstance(data.get("error"), str) else None,
                duration_ms=int(data.get("duration_ms", data.get("duration", 0)) or 0),
                files_affected=tuple(str(f) for f in files if isinstance(f, str)),
            )
        elif et is EventType.DIFF_PREVIEW:
            changes = data.get("changes") if isinstance(data.get("changes"), dict) else {}
            diff = data.get("diff") if isinstance(data.get("diff"), str) else None
            adds, dels = diff_counts(diff)
            payload = DiffPreview(
                file_path=_require_str(data, "file_path", event_type=et.value, default=data.get("filePath")),
                added=int(changes.get("added", adds)),
                removed=int(changes.get("removed", dels)),
                diff=diff,
            )
        else:
            payload = SystemNotice(
                level=NoticeLevel(data.get("level") or NoticeLevel.INFO),
                message=_require_str(data, "message", event_type=et.value),
            )
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Malformed {et.value} payload: {e}", event_type=et.value) from e

    event_id = raw.get("id")
    if isinstance(event_id, str) and event_id.strip():
        return Event(payload, id=event_id.strip())
    return Event(payload)
