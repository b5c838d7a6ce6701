from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .events import (
    AssistantMessage,
    AssistantStage,
    DiffPreview,
    Event,
    SystemNotice,
    ToolInvocation,
    ToolResult,
    UserMessage,
)

LOGGER = logging.getLogger(__name__)

_GROUPED_PAYLOADS = (AssistantMessage, AssistantStage, ToolInvocation, ToolResult, DiffPreview, SystemNotice)


@dataclass(slots=True)
class MessageGroup:
    """One turn: a user message and everything the assistant did before the next one."""

    id: str
    user_message: UserMessage
    created_at: float | None = None
    user_event_id: str | None = None
    assistant_message: AssistantMessage | None = None
    assistant_stage: AssistantStage | None = None
    tool_activity: list[Event] = field(default_factory=list)
    diff_previews: list[DiffPreview] = field(default_factory=list)
    system_notices: list[SystemNotice] = field(default_factory=list)
    results: list[AssistantMessage] = field(default_factory=list)
    completed: bool = False
    synthesized: bool = False

    @property
    def has_assistant_content(self) -> bool:
        return bool(
            self.assistant_message is not None
            or self.assistant_stage is not None
            or self.tool_activity
            or self.diff_previews
            or self.system_notices
        )

    @property
    def event_count(self) -> int:
        return (
            (0 if self.synthesized else 1)
            + len(self.results)
            + (1 if self.assistant_stage is not None else 0)
            + len(self.tool_activity)
            + len(self.diff_previews)
            + len(self.system_notices)
        )


class MessageGrouper:
    """Folds the accepted event stream into turns. At most one group is open at a time."""

    def __init__(self) -> None:
        self._groups: list[MessageGroup] = []
        self._current: MessageGroup | None = None
        self._counter = 0

    @property
    def groups(self) -> list[MessageGroup]:
        return list(self._groups)

    @property
    def open_group(self) -> MessageGroup | None:
        return self._current

    def process(self, event: Event) -> MessageGroup | None:
        data = event.data

        if isinstance(data, UserMessage):
            self._close_current()
            return self._open(data, event=event)

        if not isinstance(data, _GROUPED_PAYLOADS):
            LOGGER.warning("protocol_error", extra={"event_id": event.id, "payload": type(data).__name__})
            return None

        group = self._current
        if group is None:
            group = self._open(UserMessage(content=""), event=event, synthesized=True)

        if isinstance(data, AssistantMessage):
            group.assistant_message = data
            group.results.append(data)
        elif isinstance(data, AssistantStage):
            group.assistant_stage = data
        elif isinstance(data, (ToolInvocation, ToolResult)):
            group.tool_activity.append(event)
        elif isinstance(data, DiffPreview):
            group.diff_previews.append(data)
        else:
            group.system_notices.append(data)
        return group

    def clear(self) -> None:
        self._groups = []
        self._current = None

    def _open(self, user: UserMessage, *, event: Event, synthesized: bool = False) -> MessageGroup:
        group = MessageGroup(
            id=f"msg-{self._counter}",
            user_message=user,
            created_at=event.timestamp,
            user_event_id=None if synthesized else event.id,
            synthesized=synthesized,
        )
        self._counter += 1
        self._groups.append(group)
        self._current = group
        return group

    def _close_current(self) -> None:
        if self._current is not None:
            self._current.completed = True
            self._current = None
