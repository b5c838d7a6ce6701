from __future__ import annotations

from enum import StrEnum

from .errors import InvalidTransitionError


class ExecutionState(StrEnum):
    IDLE = "IDLE"
    THINKING = "THINKING"
    PLANNING = "PLANNING"
    PREVIEW_READY = "PREVIEW_READY"
    PENDING_CONFIRMATION = "PENDING_CONFIRMATION"
    EXECUTING = "EXECUTING"
    DONE = "DONE"
    ERROR = "ERROR"


_ALLOWED_TRANSITIONS: dict[ExecutionState, frozenset[ExecutionState]] = {
    ExecutionState.IDLE: frozenset({ExecutionState.THINKING, ExecutionState.PLANNING}),
    ExecutionState.THINKING: frozenset({ExecutionState.PLANNING, ExecutionState.ERROR}),
    ExecutionState.PLANNING: frozenset({ExecutionState.PREVIEW_READY, ExecutionState.ERROR}),
    # Auto-approved plans skip confirmation.
    ExecutionState.PREVIEW_READY: frozenset(
        {ExecutionState.PENDING_CONFIRMATION, ExecutionState.EXECUTING, ExecutionState.ERROR}
    ),
    # A declined confirmation ends the plan without executing anything.
    ExecutionState.PENDING_CONFIRMATION: frozenset(
        {ExecutionState.EXECUTING, ExecutionState.DONE, ExecutionState.ERROR}
    ),
    ExecutionState.EXECUTING: frozenset({ExecutionState.DONE, ExecutionState.ERROR}),
    ExecutionState.DONE: frozenset({ExecutionState.IDLE, ExecutionState.THINKING, ExecutionState.PLANNING}),
    ExecutionState.ERROR: frozenset({ExecutionState.IDLE, ExecutionState.THINKING, ExecutionState.PLANNING}),
}

_TERMINAL: frozenset[ExecutionState] = frozenset({ExecutionState.DONE, ExecutionState.ERROR})


def is_terminal_state(state: ExecutionState) -> bool:
    return state in _TERMINAL


def allowed_next_states(state: ExecutionState) -> frozenset[ExecutionState]:
    return _ALLOWED_TRANSITIONS.get(state, frozenset())


def is_valid_transition(before: ExecutionState, after: ExecutionState) -> bool:
    return after in allowed_next_states(before)


def validate_transition(*, before: ExecutionState, after: ExecutionState) -> None:
    allowed = allowed_next_states(before)
    if after in allowed:
        return
    if before == after:
        raise InvalidTransitionError(
            f"Illegal ExecutionState transition: {before.value} -> {after.value} (no-op not allowed)",
            before=before.value,
            after=after.value,
        )
    rendered = ", ".join(s.value for s in sorted(allowed, key=lambda s: s.value))
    raise InvalidTransitionError(
        f"Illegal ExecutionState transition: {before.value} -> {after.value} (allowed: {rendered or '∅'})",
        before=before.value,
        after=after.value,
    )
