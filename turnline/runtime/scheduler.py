from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, TypeVar

from .ids import Clock, MonotonicClock

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class RenderScheduler(Generic[T]):
    """
    Throttled batch flusher.

    - `submit()` appends to an unbounded queue and never blocks on rendering.
    - `tick()` drains the whole queue into exactly one `flush(batch)` call, at most
      once per `interval_s`, and never while another flush is in flight.
    - `start()` runs a daemon driver thread; without it, callers drive `tick()`
      themselves (tests use a fake clock).
    """

    def __init__(
        self,
        flush: Callable[[list[T]], None],
        *,
        interval_s: float = 0.1,
        clock: Clock | None = None,
        name: str = "turnline-render",
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0.")
        self._flush = flush
        self._interval_s = interval_s
        self._clock = clock or MonotonicClock()
        self._name = name

        self._lock = threading.Lock()
        self._queue: list[T] = []
        self._flushing = False
        self._last_flush: float | None = None
        self._flush_count = 0

        self._wake = threading.Event()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def flush_count(self) -> int:
        with self._lock:
            return self._flush_count

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._queue)

    @property
    def flushing(self) -> bool:
        with self._lock:
            return self._flushing

    def submit(self, item: T) -> None:
        with self._lock:
            self._queue.append(item)
        self._wake.set()

    def next_delay(self) -> float | None:
        """Seconds until a flush may run; None when there is nothing to flush."""

        with self._lock:
            if not self._queue:
                return None
            return self._remaining_locked(self._clock.now())

    def _remaining_locked(self, now: float) -> float:
        if self._last_flush is None:
            return 0.0
        return max(0.0, self._interval_s - (now - self._last_flush))

    def tick(self) -> bool:
        """Flush if due. Returns True when a flush ran."""

        with self._lock:
            if not self._queue or self._flushing:
                return False
            now = self._clock.now()
            if self._remaining_locked(now) > 0:
                return False
            batch = self._take_locked(now)
        self._run_flush(batch)
        return True

    def drain(self) -> bool:
        """Flush immediately regardless of the throttle (shutdown, clear)."""

        with self._lock:
            if self._flushing:
                return False
            batch = self._take_locked(self._clock.now())
        self._run_flush(batch)
        return True

    def discard(self) -> int:
        with self._lock:
            dropped = len(self._queue)
            self._queue = []
            return dropped

    def _take_locked(self, now: float) -> list[T]:
        batch = self._queue
        self._queue = []
        self._flushing = True
        self._last_flush = now
        return batch

    def _run_flush(self, batch: list[T]) -> None:
        try:
            self._flush(batch)
        finally:
            with self._lock:
                self._flushing = False
                self._flush_count += 1

    # --- driver thread ---
    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run_loop, name=self._name, daemon=True)
        self._thread.start()

    def stop(self, *, join_timeout_s: float = 1.0) -> None:
        self._stop.set()
        self._wake.set()
        t = self._thread
        self._thread = None
        if t is not None:
            t.join(timeout=join_timeout_s)
        if self.pending:
            self.drain()

    def _run_loop(self) -> None:
        while not self._stop.is_set():
            delay = self.next_delay()
            if delay is None:
                self._wake.wait()
                self._wake.clear()
                continue
            if delay > 0:
                self._stop.wait(delay)
                continue
            try:
                self.tick()
            except Exception:
                # The render loop must not die with the surface.
                LOGGER.exception("render_flush_failed")
