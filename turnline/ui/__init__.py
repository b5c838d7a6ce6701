from __future__ import annotations

from .console import ConsoleConfirmationPrompt, ConsoleSurface
from .timeline import RenderOptions, TimelineRenderer, render_plan, render_report

__all__ = [
    "ConsoleConfirmationPrompt",
    "ConsoleSurface",
    "RenderOptions",
    "TimelineRenderer",
    "render_plan",
    "render_report",
]
