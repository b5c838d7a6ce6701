from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from .config import SessionPolicy
from .errors import InvalidTransitionError
from .plan import MutationPlan
from .risk import RiskLevel
from .status import ExecutionState, validate_transition

LOGGER = logging.getLogger(__name__)

_CYCLE_START = frozenset({ExecutionState.IDLE, ExecutionState.THINKING, ExecutionState.PLANNING})

StateObserver = Callable[[ExecutionState, "MutationPlan | None"], None]


@dataclass(frozen=True, slots=True)
class AutoApproveStatus:
    enabled: bool
    reason: str | None = None


class ExecutionStateManager:
    """
    Life cycle of the plan of one agent turn.

    Transitions outside the table in `status.py` are rejected, logged, and leave
    the state unchanged. Observers run synchronously in registration order.
    """

    def __init__(self, *, policy: SessionPolicy | None = None) -> None:
        self._policy = policy or SessionPolicy()
        self._state = ExecutionState.IDLE
        self._plan: MutationPlan | None = None
        self._observers: list[StateObserver] = []
        self._rejected = 0

    @property
    def state(self) -> ExecutionState:
        return self._state

    @property
    def plan(self) -> MutationPlan | None:
        return self._plan

    @property
    def policy(self) -> SessionPolicy:
        return self._policy

    @property
    def rejected_transitions(self) -> int:
        return self._rejected

    def on_state_change(self, callback: StateObserver) -> Callable[[], None]:
        self._observers.append(callback)

        def _unsubscribe() -> None:
            try:
                self._observers.remove(callback)
            except ValueError:
                pass

        return _unsubscribe

    def transition(self, new_state: ExecutionState, plan: MutationPlan | None = None) -> bool:
        try:
            self.transition_or_raise(new_state, plan)
        except InvalidTransitionError as e:
            self._rejected += 1
            LOGGER.warning("invalid_state_transition", extra={"before": e.before, "after": e.after})
            return False
        return True

    def transition_or_raise(self, new_state: ExecutionState, plan: MutationPlan | None = None) -> None:
        target = ExecutionState(new_state)
        validate_transition(before=self._state, after=target)
        before = self._state
        self._state = target
        if plan is not None:
            self._plan = plan
        elif target in _CYCLE_START:
            # A new thinking/planning cycle no longer belongs to the previous plan.
            self._plan = None
        if self._plan is not None:
            self._plan.state = target
        LOGGER.debug("state_transition", extra={"before": before.value, "after": target.value})
        self._notify(plan if plan is not None else self._plan)

    def _notify(self, plan: MutationPlan | None) -> None:
        for cb in list(self._observers):
            cb(self._state, plan)

    def reset(self) -> None:
        self._state = ExecutionState.IDLE
        self._plan = None
        self._notify(None)

    # --- auto-approve policy ---
    @property
    def auto_approve(self) -> bool:
        return self._policy.auto_approve

    def set_auto_approve(self, enabled: bool) -> None:
        self._policy.auto_approve = enabled

    def can_auto_apply(self, plan: MutationPlan) -> bool:
        if not self._policy.auto_approve:
            return False
        if plan.has_high_risk():
            LOGGER.debug("auto_approve_blocked", extra={"plan_id": plan.id, "reason": "high_risk"})
            return False
        return all(item.can_auto_apply for item in plan.items)

    def enable_auto_approve(self, plan: MutationPlan | None = None) -> bool:
        if plan is not None and plan.has_high_risk():
            return False
        self._policy.auto_approve = True
        return True

    def disable_auto_approve(self) -> None:
        self._policy.auto_approve = False

    def auto_approve_status(self) -> AutoApproveStatus:
        if not self._policy.auto_approve:
            return AutoApproveStatus(enabled=False)
        if self._plan is not None and any(it.risk is RiskLevel.HIGH for it in self._plan.items):
            return AutoApproveStatus(enabled=False, reason="HIGH risk items present")
        return AutoApproveStatus(enabled=True)
