from __future__ import annotations

import asyncio
import io

from turnline.ui.console import ConsoleConfirmationPrompt, ConsoleSurface, match_option

OPTIONS = ("yes", "no", "always")


class TTYBuffer(io.StringIO):
    def isatty(self) -> bool:
        return True


def test_surface_appends_blocks_without_ansi_on_pipes() -> None:
    stream = io.StringIO()
    surface = ConsoleSurface(stream=stream)

    surface.clear()
    surface.append_block("hello")
    surface.scroll_to_end()

    assert stream.getvalue() == "hello\n"
    assert surface.enable_color is False
    assert surface.current_width() > 0


def test_surface_clears_screen_on_tty() -> None:
    stream = TTYBuffer()
    surface = ConsoleSurface(stream=stream)

    surface.clear()
    surface.append_block("frame")

    assert stream.getvalue() == "\x1b[2J\x1b[Hframe\n"
    assert surface.enable_color is True


def test_suspended_surface_replays_latest_frame() -> None:
    stream = io.StringIO()
    surface = ConsoleSurface(stream=stream)

    with surface.suspend():
        surface.clear()
        surface.append_block("frame 1")
        surface.clear()
        surface.append_block("frame 2")
        assert stream.getvalue() == ""

    assert stream.getvalue() == "frame 2\n"


def test_match_option() -> None:
    assert match_option("Y", OPTIONS) == "yes"
    assert match_option(" no ", OPTIONS) == "no"
    assert match_option("a", OPTIONS) == "always"
    assert match_option("maybe", OPTIONS) is None
    assert match_option("", OPTIONS) is None


def test_prompt_reprompts_until_valid_answer() -> None:
    answers = iter(["maybe", "a"])
    out = io.StringIO()
    prompt = ConsoleConfirmationPrompt(input_fn=lambda _q: next(answers), stream=out)

    result = asyncio.run(prompt.request("Ready to apply changes", OPTIONS))

    assert result == "always"
    assert "Ready to apply changes" in out.getvalue()
    assert "Please type yes, no, always." in out.getvalue()


def test_prompt_eof_resolves_to_no() -> None:
    def _eof(_question: str) -> str:
        raise EOFError

    prompt = ConsoleConfirmationPrompt(input_fn=_eof, stream=io.StringIO())

    assert asyncio.run(prompt.request("plan", OPTIONS)) == "no"


def test_prompt_suspends_surface_while_asking() -> None:
    surface_stream = io.StringIO()
    surface = ConsoleSurface(stream=surface_stream)

    def _answer(_question: str) -> str:
        surface.append_block("background repaint")
        return "y"

    prompt = ConsoleConfirmationPrompt(surface=surface, input_fn=_answer, stream=io.StringIO())

    assert asyncio.run(prompt.request("plan", OPTIONS)) == "yes"
    assert surface_stream.getvalue() == "background repaint\n"
