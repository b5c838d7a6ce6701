from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Any

from ..ui.timeline import RenderOptions, TimelineRenderer
from .config import SessionPolicy, TimelineConfig
from .dedup import EventDeduplicator
from .errors import ProtocolError
from .events import Event, event_from_dict
from .grouping import MessageGroup, MessageGrouper
from .ids import Clock, MonotonicClock
from .scheduler import RenderScheduler
from .surface import RenderSurface

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PipelineStats:
    total_events: int
    accepted_events: int
    dedup_hits: int
    render_count: int
    cache_size: int
    queue_size: int
    group_count: int


class TimelinePipeline:
    """
    events -> dedup -> throttled batch -> grouper -> renderer -> surface.

    Producers call `add_event` from any thread; grouping and rendering happen only
    inside the scheduler flush, so the surface sees a single writer. One instance
    per transcript; construct it explicitly.
    """

    def __init__(
        self,
        surface: RenderSurface,
        *,
        config: TimelineConfig | None = None,
        policy: SessionPolicy | None = None,
        clock: Clock | None = None,
        color: bool = False,
    ) -> None:
        self.config = config or TimelineConfig()
        self.policy = policy or SessionPolicy.from_config(self.config)
        self._surface = surface
        self._clock = clock or MonotonicClock()
        self._options = RenderOptions.from_config(self.config, color=color)

        self._dedup = EventDeduplicator(
            window_s=self.config.dedup_window_ms / 1000,
            capacity=self.config.dedup_cache_capacity,
            ttl_s=self.config.dedup_cache_ttl_ms / 1000,
            clock=self._clock,
        )
        self._grouper = MessageGrouper()
        self._scheduler: RenderScheduler[Event] = RenderScheduler(
            self._flush,
            interval_s=self.config.render_throttle_ms / 1000,
            clock=self._clock,
        )

        self._state_lock = threading.RLock()
        self._ingest_lock = threading.Lock()
        self._counter_lock = threading.Lock()
        self._total = 0
        self._accepted = 0
        self._renders = 0

    @property
    def groups(self) -> list[MessageGroup]:
        with self._state_lock:
            return self._grouper.groups

    @property
    def render_options(self) -> RenderOptions:
        return replace(self._options, debug=self.policy.debug)

    def add_event(self, event: Event) -> bool:
        """Returns False when the event was suppressed as a duplicate."""

        with self._counter_lock:
            self._total += 1
        # Stamping and enqueueing are one step, so queue order is acceptance order.
        with self._ingest_lock:
            accepted = self._dedup.accept(event)
            if accepted is None:
                return False
            self._scheduler.submit(accepted)
        with self._counter_lock:
            self._accepted += 1
        return True

    def add_raw_event(self, raw: dict[str, Any]) -> bool:
        try:
            event = event_from_dict(raw)
        except ProtocolError as e:
            LOGGER.debug("protocol_error", extra={"event_type": e.event_type, "error": str(e)})
            return False
        return self.add_event(event)

    def _flush(self, batch: list[Event]) -> None:
        with self._state_lock:
            for event in batch:
                self._grouper.process(event)
            self._render_locked()

    def _render_locked(self) -> None:
        renderer = TimelineRenderer(self.render_options)
        text = renderer.render(self._grouper.groups, width=self._surface.current_width())
        self._surface.clear()
        if text:
            self._surface.append_block(text)
        self._surface.scroll_to_end()
        with self._counter_lock:
            self._renders += 1

    def rerender(self) -> None:
        """Repaint the current transcript, e.g. after a debug toggle or a resize."""

        with self._state_lock:
            self._render_locked()

    def clear(self) -> None:
        dropped = self._scheduler.discard()
        with self._state_lock:
            self._grouper.clear()
            self._render_locked()
        LOGGER.debug("timeline_cleared", extra={"dropped": dropped})

    def stats(self) -> PipelineStats:
        with self._counter_lock:
            total, accepted, renders = self._total, self._accepted, self._renders
        return PipelineStats(
            total_events=total,
            accepted_events=accepted,
            dedup_hits=self._dedup.hits,
            render_count=renders,
            cache_size=self._dedup.cache_size,
            queue_size=self._scheduler.pending,
            group_count=len(self.groups),
        )

    # --- driving ---
    def tick(self) -> bool:
        return self._scheduler.tick()

    def flush_now(self) -> bool:
        if not self._scheduler.pending:
            return False
        return self._scheduler.drain()

    def start(self) -> None:
        self._scheduler.start()

    def stop(self) -> None:
        self._scheduler.stop()

    def __enter__(self) -> "TimelinePipeline":
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()
