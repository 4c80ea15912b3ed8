import asyncio

import pytest

from src.arena.domain.errors import TransientExecutionFailure, UnknownModel
from src.arena.services.generation import GenerationExecutor, parse_generated_markup
from tests.utils import FakeBackend


def test_parse_splits_style_block_from_html():
    html, css = parse_generated_markup("<style>\n.clock { color: red; }\n</style>\n<div class=\"clock\">12:00</div>")
    assert css == ".clock { color: red; }"
    assert html == '<div class="clock">12:00</div>'


def test_parse_strips_code_fences():
    text = "```html\n<style>.a{}</style><div class=\"a\">hi</div>\n```"
    html, css = parse_generated_markup(text)
    assert css == ".a{}"
    assert html == '<div class="a">hi</div>'


def test_parse_without_style_yields_empty_css():
    html, css = parse_generated_markup("  <p>plain</p>  ")
    assert html == "<p>plain</p>"
    assert css == ""


def test_parse_uses_first_style_block_only():
    html, css = parse_generated_markup("<STYLE>a{}</STYLE><div></div><style>b{}</style>")
    assert css == "a{}"
    assert "<style>b{}</style>" in html


def test_parse_keeps_scripts_in_html():
    html, _ = parse_generated_markup("<style>x{}</style><div id=t></div><script>tick()</script>")
    assert html.endswith("<script>tick()</script>")


def test_execute_returns_parsed_markup():
    backend = FakeBackend(default="<style>.x{}</style><div class=\"x\"></div>")
    executor = GenerationExecutor(client=backend)
    result = asyncio.run(executor.execute("draw a clock", "gpt-4o"))
    assert result.css == ".x{}"
    assert result.html == '<div class="x"></div>'
    assert result.provider == "openai"
    assert backend.calls == [("gpt-4o", "draw a clock")]


def test_execute_dispatches_legacy_model_to_replacement():
    backend = FakeBackend()
    executor = GenerationExecutor(client=backend)
    result = asyncio.run(executor.execute("p", "claude-3-5-haiku-latest"))
    assert backend.calls[0][0] == "claude-haiku-4-5-20251001"
    assert result.model_id == "claude-3-5-haiku-latest"
    assert result.provider == "anthropic"


def test_execute_wraps_backend_errors_as_transient():
    backend = FakeBackend(default=RuntimeError("rate limited"))
    executor = GenerationExecutor(client=backend)
    with pytest.raises(TransientExecutionFailure) as exc:
        asyncio.run(executor.execute("p", "grok-4"))
    assert str(exc.value) == "rate limited"
    assert exc.value.model_id == "grok-4"


def test_execute_unknown_model_never_calls_backend():
    backend = FakeBackend()
    executor = GenerationExecutor(client=backend)
    with pytest.raises(UnknownModel):
        asyncio.run(executor.execute("p", "mystery-model"))
    assert backend.calls == []


def test_execute_times_out_slow_backend():
    class SlowBackend:
        async def complete(self, system_prompt, user_prompt, selection):
            await asyncio.sleep(5)
            return "late"

    executor = GenerationExecutor(client=SlowBackend(), timeout=0.01)
    with pytest.raises(TransientExecutionFailure) as exc:
        asyncio.run(executor.execute("p", "gpt-4o"))
    assert str(exc.value) == "TimeoutError"
