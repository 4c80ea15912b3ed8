"""Transport to the generation backends.

Every provider in the catalog exposes an OpenAI-compatible chat completions
endpoint, so one ``ChatOpenAI`` client configured per provider covers them
all. Provider selection is table-driven over :class:`Provider`; nothing here
inspects model id prefixes.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Protocol

from langchain_openai import ChatOpenAI

from ..domain.model_catalog import ModelSpec, Provider


LOG = logging.getLogger("arena.llm")


@dataclass(frozen=True)
class ProviderSelection:
    """Everything needed to reach the backend for one model."""

    provider: Provider
    model: str
    api_key_env: str
    base_url_env: str
    default_base_url: str


PROVIDER_CONFIG: Dict[Provider, Dict[str, str]] = {
    Provider.OPENAI: {
        "api_key_env": "OPENAI_API_KEY",
        "base_url_env": "OPENAI_BASE_URL",
        "default_base_url": "https://api.openai.com/v1",
    },
    Provider.ANTHROPIC: {
        "api_key_env": "ANTHROPIC_API_KEY",
        "base_url_env": "ANTHROPIC_BASE_URL",
        "default_base_url": "https://api.anthropic.com/v1/",
    },
    Provider.GOOGLE: {
        "api_key_env": "GOOGLE_GENERATIVE_AI_API_KEY",
        "base_url_env": "GOOGLE_BASE_URL",
        "default_base_url": "https://generativelanguage.googleapis.com/v1beta/openai/",
    },
    Provider.XAI: {
        "api_key_env": "XAI_API_KEY",
        "base_url_env": "XAI_BASE_URL",
        "default_base_url": "https://api.x.ai/v1",
    },
}


def select_provider(spec: ModelSpec) -> ProviderSelection:
    cfg = PROVIDER_CONFIG[spec.provider]
    return ProviderSelection(
        provider=spec.provider,
        model=spec.id,
        api_key_env=cfg["api_key_env"],
        base_url_env=cfg["base_url_env"],
        default_base_url=cfg["default_base_url"],
    )


def _is_placeholder_key(k: Optional[str]) -> bool:
    if not k:
        return True
    val = k.strip()
    if not val:
        return True
    return val in {"__REDACTED__", "__REPLACE_WITH_YOUR_KEY__", "changeme", "your_api_key_here", "placeholder"}


class BackendClient(Protocol):
    async def complete(self, system_prompt: str, user_prompt: str, selection: ProviderSelection) -> str: ...


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    # Some providers return a list of content parts.
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text") or ""))
        return "".join(parts)
    return str(content or "")


class ChatBackendClient:
    """Issues exactly one chat completion per call; retries belong to the scheduler."""

    def __init__(self, env: Optional[Mapping[str, str]] = None, timeout: Optional[float] = None) -> None:
        self._env = env if env is not None else os.environ
        self._timeout = timeout

    def _build_llm(self, selection: ProviderSelection) -> ChatOpenAI:
        api_key = self._env.get(selection.api_key_env)
        if _is_placeholder_key(api_key):
            raise RuntimeError(f"{selection.api_key_env} is not configured")
        base_url = self._env.get(selection.base_url_env) or selection.default_base_url
        return ChatOpenAI(
            api_key=api_key,
            base_url=base_url,
            model=selection.model,
            timeout=self._timeout,
            max_retries=0,
        )

    async def complete(self, system_prompt: str, user_prompt: str, selection: ProviderSelection) -> str:
        llm = self._build_llm(selection)
        LOG.debug("backend_invoke", extra={"provider": selection.provider.value, "model": selection.model})
        res = await llm.ainvoke([
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ])
        return _content_text(getattr(res, "content", res))
