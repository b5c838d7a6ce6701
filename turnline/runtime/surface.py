"""Collaborator boundaries.

The pipeline and the plan runner only talk to the outside world through these
protocols: something that paints text, something that runs a plan item, and
something that asks the user a question. Collaborators receive copies (rendered
text, frozen plan items) and never touch pipeline state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, Sequence

if TYPE_CHECKING:
    from .plan import MutationPlanItem


class RenderSurface(Protocol):
    def clear(self) -> None:
        ...

    def append_block(self, text: str) -> None:
        ...

    def scroll_to_end(self) -> None:
        ...

    def current_width(self) -> int:
        """Visible columns; used to pick side-by-side vs stacked diffs."""


@dataclass(frozen=True, slots=True)
class ToolOutcome:
    success: bool
    output: str | None = None
    error: str | None = None
    duration_ms: int = 0


class ToolExecutor(Protocol):
    async def execute(self, item: "MutationPlanItem") -> ToolOutcome:
        """Run one plan item. Called once per item, in plan order, after approval."""


class ConfirmationPrompt(Protocol):
    async def request(self, prompt_text: str, options: Sequence[str]) -> str:
        """Resolve exactly once with one of `options`."""
