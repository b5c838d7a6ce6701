from __future__ import annotations

import asyncio
import shutil
import sys
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Sequence, TextIO


class ConsoleSurface:
    """
    Render surface backed by a text stream (stdout by default).

    `clear()` uses ANSI clear/home only when the stream is a TTY; on pipes and log
    files the blocks are simply appended. While suspended (a prompt owns the
    terminal) paints are held back and the latest one is replayed on resume.
    """

    def __init__(self, *, stream: TextIO | None = None, enable_color: bool | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdout
        self._ansi = bool(getattr(self._stream, "isatty", lambda: False)())
        self.enable_color = self._ansi if enable_color is None else bool(enable_color)

        self._io_lock = threading.RLock()
        self._suspend_count = 0
        self._held: list[str] | None = None

    def clear(self) -> None:
        with self._io_lock:
            if self._suspend_count:
                self._held = []
                return
            if self._ansi:
                self._stream.write("\x1b[2J\x1b[H")

    def append_block(self, text: str) -> None:
        with self._io_lock:
            if self._suspend_count:
                if self._held is None:
                    self._held = []
                self._held.append(text)
                return
            self._stream.write(text if text.endswith("\n") else text + "\n")

    def scroll_to_end(self) -> None:
        with self._io_lock:
            if self._suspend_count:
                return
            self._stream.flush()

    def current_width(self) -> int:
        return shutil.get_terminal_size((80, 20)).columns

    @contextmanager
    def suspend(self) -> Iterator[None]:
        with self._io_lock:
            self._suspend_count += 1
        try:
            yield
        finally:
            with self._io_lock:
                self._suspend_count -= 1
                held = self._held if self._suspend_count == 0 else None
                if held is not None:
                    self._held = None
                    self.clear()
                    for block in held:
                        self.append_block(block)
                    self.scroll_to_end()


class ConsoleConfirmationPrompt:
    """
    Asks a question on the console and resolves to one of the given options.

    Answers match an option by full name or first letter (`y`, `n`, `a`).
    Esc, EOF and Ctrl-C resolve to "no".
    """

    def __init__(
        self,
        *,
        surface: ConsoleSurface | None = None,
        input_fn: Callable[[str], str] | None = None,
        stream: TextIO | None = None,
        use_prompt_toolkit: bool | None = None,
    ) -> None:
        self._surface = surface
        self._input_fn = input_fn or input
        self._stream = stream if stream is not None else sys.stdout
        if use_prompt_toolkit is None:
            use_prompt_toolkit = input_fn is None and _is_tty()
        self._use_prompt_toolkit = use_prompt_toolkit
        self._session = None

    async def request(self, prompt_text: str, options: Sequence[str]) -> str:
        if not options:
            raise ValueError("options must not be empty.")
        fallback = "no" if "no" in options else options[-1]
        question = "Proceed? [" + "/".join(o[:1] for o in options) + "] > "

        with self._suspended():
            self._println(prompt_text)
            while True:
                try:
                    raw = await self._read(question)
                except (EOFError, KeyboardInterrupt):
                    self._println()
                    return fallback
                answer = match_option(raw, options)
                if answer is not None:
                    return answer
                self._println("Please type " + ", ".join(options) + ".")

    @contextmanager
    def _suspended(self) -> Iterator[None]:
        if self._surface is None:
            yield
            return
        with self._surface.suspend():
            yield

    def _println(self, text: str = "") -> None:
        self._stream.write(text + "\n")
        self._stream.flush()

    async def _read(self, question: str) -> str:
        if self._use_prompt_toolkit:
            session = self._prompt_session()
            return await session.prompt_async(question)
        return await asyncio.to_thread(self._input_fn, question)

    def _prompt_session(self):
        if self._session is not None:
            return self._session

        from prompt_toolkit import PromptSession
        from prompt_toolkit.key_binding import KeyBindings
        from prompt_toolkit.keys import Keys

        kb = KeyBindings()

        @kb.add(Keys.Escape, eager=True)
        def _(event) -> None:
            event.app.exit(result="n")

        self._session = PromptSession(multiline=False, key_bindings=kb)
        return self._session


def match_option(raw: str | None, options: Sequence[str]) -> str | None:
    answer = str(raw or "").strip().lower()
    if not answer:
        return None
    for option in options:
        if answer == option.lower():
            return option
    for option in options:
        if answer == option[:1].lower():
            return option
    return None


def _is_tty() -> bool:
    try:
        return bool(sys.stdin.isatty() and sys.stdout.isatty())
    except (AttributeError, ValueError):
        return False
