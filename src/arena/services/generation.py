"""Single-attempt generation: prompt + model id in, parsed markup out."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import time
from dataclasses import dataclass
from typing import Optional, Tuple

from ..domain.errors import TransientExecutionFailure
from ..domain.model_catalog import ModelCatalog, get_catalog
from ..observability.metrics import GENERATION_ATTEMPTS, GENERATION_LATENCY
from .backends import BackendClient, ChatBackendClient, select_provider


LOG = logging.getLogger("arena.llm")


SYSTEM_PROMPT = """You are a creative HTML/CSS/JavaScript generator. Given a user's description, generate beautiful, functional, interactive code.

IMPORTANT RULES:
1. Return ONLY valid HTML, CSS, and optionally JavaScript
2. The HTML should be a complete snippet that can be rendered inside a container div
3. Do NOT include <html>, <head>, or <body> tags - just the content
4. Use modern CSS with flexbox/grid for layouts
5. Make it visually appealing with good typography and spacing
6. Keep the code concise but impressive
7. Use CSS animations and transitions for visual effects
8. Use JavaScript for interactivity, real-time updates (like clocks), user input handling, etc.
9. All styles should be in a single <style> tag at the beginning
10. All scripts should be in a <script> tag at the end

Format your response EXACTLY like this:
<style>
/* Your CSS here */
</style>
<div class="container">
  <!-- Your HTML here -->
</div>
<script>
// Your JavaScript here (optional)
</script>"""


_FENCE_OPEN = re.compile(r"^```(?:html|css|javascript|js)?[ \t]*\n?", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\n?```$")
_STYLE_BLOCK = re.compile(r"<style\b[^>]*>([\s\S]*?)</style>", re.IGNORECASE)


def parse_generated_markup(text: str) -> Tuple[str, str]:
    """Split a model response into ``(html, css)``.

    Code fences around the whole response are dropped. The first ``<style>``
    block becomes the CSS; everything else is the HTML. Nothing is rejected:
    text without a style block simply yields empty CSS.
    """
    content = (text or "").strip()
    content = _FENCE_OPEN.sub("", content, count=1)
    content = _FENCE_CLOSE.sub("", content, count=1)
    match = _STYLE_BLOCK.search(content)
    if not match:
        return content.strip(), ""
    css = match.group(1).strip()
    html = (content[: match.start()] + content[match.end():]).strip()
    return html, css


@dataclass(frozen=True)
class GeneratedMarkup:
    html: str
    css: str
    raw_text: str
    model_id: str
    provider: str


def _timeout_from_env() -> Optional[float]:
    raw = os.getenv("ARENA_LLM_TIMEOUT")
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if value > 0 else None


class GenerationExecutor:
    """Runs one remote call for (prompt, model id) and parses the response."""

    def __init__(
        self,
        client: Optional[BackendClient] = None,
        catalog: Optional[ModelCatalog] = None,
        timeout: Optional[float] = None,
        system_prompt: str = SYSTEM_PROMPT,
    ) -> None:
        self._client = client or ChatBackendClient()
        self._catalog = catalog or get_catalog()
        self._timeout = timeout if timeout is not None else _timeout_from_env()
        self._system_prompt = system_prompt

    async def execute(self, prompt: str, model_id: str) -> GeneratedMarkup:
        """Generate markup for ``prompt`` with ``model_id``.

        Raises
        ------
        UnknownModel
            If the model (after alias resolution) is not in the catalog.
        TransientExecutionFailure
            If the remote call fails for any reason.
        """
        spec = self._catalog.resolve(model_id)
        selection = select_provider(spec)
        provider = selection.provider.value
        if spec.id != model_id:
            LOG.info("Dispatching legacy model %s as %s", model_id, spec.id)

        start = time.perf_counter()
        try:
            call = self._client.complete(self._system_prompt, prompt, selection)
            if self._timeout is not None:
                text = await asyncio.wait_for(call, timeout=self._timeout)
            else:
                text = await call
        except Exception as exc:
            GENERATION_ATTEMPTS.labels(provider=provider, outcome="error").inc()
            message = str(exc) or exc.__class__.__name__
            LOG.warning(
                "backend_call_failed",
                extra={"provider": provider, "model": spec.id, "err": message},
            )
            raise TransientExecutionFailure(message, model_id=model_id) from exc
        finally:
            GENERATION_LATENCY.labels(provider=provider).observe(time.perf_counter() - start)

        GENERATION_ATTEMPTS.labels(provider=provider, outcome="success").inc()
        html, css = parse_generated_markup(text)
        return GeneratedMarkup(html=html, css=css, raw_text=text, model_id=model_id, provider=provider)
