from __future__ import annotations

from typing import Any


class TurnlineError(RuntimeError):
    pass


class ProtocolError(TurnlineError):
    """An event or payload the pipeline does not understand."""

    def __init__(self, message: str, *, event_type: str | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.event_type = event_type
        self.details = details


class InvalidTransitionError(TurnlineError, ValueError):
    def __init__(self, message: str, *, before: str, after: str) -> None:
        super().__init__(message)
        self.before = before
        self.after = after


class PlanBuildError(TurnlineError):
    pass


class PlanExecutionError(TurnlineError):
    def __init__(self, message: str, *, plan_id: str | None = None, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.plan_id = plan_id
        self.__cause__ = cause
