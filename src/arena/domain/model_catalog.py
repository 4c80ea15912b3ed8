"""Static catalog of the models a demo can fan out to.

The catalog is the single source of truth for which model ids exist, which
provider serves them, which ones are enabled on new demos, and the order in
which tiles are displayed. Retired ids stay in the catalog as legacy entries
so historical demos keep rendering; they are aliased to a replacement id at
dispatch time but never rewritten in stored data.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import UnknownModel


class Provider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    XAI = "xai"

    @property
    def display_name(self) -> str:
        return _PROVIDER_NAMES[self]


_PROVIDER_NAMES: Dict[Provider, str] = {
    Provider.OPENAI: "OpenAI",
    Provider.ANTHROPIC: "Anthropic",
    Provider.GOOGLE: "Google",
    Provider.XAI: "xAI",
}


@dataclass(frozen=True)
class ModelSpec:
    """One catalog entry."""

    id: str
    name: str
    provider: Provider
    default_enabled: bool = False
    # Legacy entries point at the id that now serves their requests.
    alias_of: Optional[str] = None

    @property
    def generatable(self) -> bool:
        return self.alias_of is None


ALL_MODELS: Tuple[ModelSpec, ...] = (
    ModelSpec("gpt-4o-mini", "GPT-4o Mini", Provider.OPENAI),
    ModelSpec("gpt-4o", "GPT-4o", Provider.OPENAI, default_enabled=True),
    ModelSpec("gpt-5.2", "GPT-5.2", Provider.OPENAI, default_enabled=True),
    ModelSpec("gpt-5.2-codex", "GPT-5.2 Codex", Provider.OPENAI, default_enabled=True),
    ModelSpec("claude-opus-4-5-20251101", "Opus 4.5", Provider.ANTHROPIC, default_enabled=True),
    ModelSpec("claude-haiku-4-5-20251001", "Haiku 4.5", Provider.ANTHROPIC, default_enabled=True),
    # Claude 3.5 Haiku was retired; old demos still reference it.
    ModelSpec(
        "claude-3-5-haiku-latest",
        "Haiku 3.5",
        Provider.ANTHROPIC,
        alias_of="claude-haiku-4-5-20251001",
    ),
    ModelSpec("claude-sonnet-4-20250514", "Sonnet 4", Provider.ANTHROPIC, default_enabled=True),
    ModelSpec("claude-sonnet-4-5-20250929", "Sonnet 4.5", Provider.ANTHROPIC),
    ModelSpec("gemini-2.5-flash", "Gemini 2.5 Flash", Provider.GOOGLE, default_enabled=True),
    ModelSpec("gemini-3-flash-preview", "Gemini 3 Flash", Provider.GOOGLE, default_enabled=True),
    ModelSpec("gemini-3-pro-preview", "Gemini 3 Pro", Provider.GOOGLE),
    ModelSpec("grok-3", "Grok 3", Provider.XAI),
    ModelSpec("grok-4", "Grok 4", Provider.XAI, default_enabled=True),
    ModelSpec("grok-code-fast-1", "Grok 4 Code", Provider.XAI, default_enabled=True),
)


class ModelCatalog:
    """Lookup, aliasing and ordering over a fixed set of :class:`ModelSpec`."""

    def __init__(self, models: Iterable[ModelSpec] = ALL_MODELS) -> None:
        self._models: List[ModelSpec] = list(models)
        self._by_id: Dict[str, ModelSpec] = {m.id: m for m in self._models}
        self._rank: Dict[str, int] = {m.id: idx for idx, m in enumerate(self._models)}
        for spec in self._models:
            if spec.alias_of is not None and spec.alias_of not in self._by_id:
                raise ValueError(f"Alias target {spec.alias_of!r} for {spec.id!r} is not in the catalog")

    def __iter__(self):
        return iter(self._models)

    def __len__(self) -> int:
        return len(self._models)

    def get(self, model_id: str) -> Optional[ModelSpec]:
        return self._by_id.get(model_id)

    def canonical_id(self, model_id: str) -> str:
        """Follow alias links; unknown ids are returned unchanged."""
        seen = set()
        current = model_id
        while current in self._by_id and self._by_id[current].alias_of and current not in seen:
            seen.add(current)
            current = self._by_id[current].alias_of  # type: ignore[assignment]
        return current

    def resolve(self, model_id: str) -> ModelSpec:
        """Return the spec that should serve ``model_id``.

        Raises
        ------
        UnknownModel
            If neither the id nor its alias target is in the catalog.
        """
        spec = self._by_id.get(self.canonical_id(model_id))
        if spec is None:
            raise UnknownModel(model_id)
        return spec

    def is_known(self, model_id: str) -> bool:
        return model_id in self._by_id

    def is_generatable(self, model_id: str) -> bool:
        spec = self._by_id.get(model_id)
        return bool(spec and spec.generatable)

    def default_enabled_models(self) -> List[str]:
        return [m.id for m in self._models if m.default_enabled and m.generatable]

    def canonical_order(self) -> List[str]:
        return [m.id for m in self._models]

    def sort_models(self, model_ids: Iterable[str]) -> List[str]:
        """Known ids in catalog order, then unknown ids in their input order.

        Duplicates are dropped, keeping the first occurrence.
        """
        unique: List[str] = []
        seen = set()
        for mid in model_ids:
            if mid in seen:
                continue
            seen.add(mid)
            unique.append(mid)
        known = sorted((m for m in unique if m in self._rank), key=self._rank.__getitem__)
        unknown = [m for m in unique if m not in self._rank]
        return known + unknown

    def model_name(self, model_id: str) -> str:
        """Display name of the model that serves ``model_id``; aliases show their target."""
        spec = self._by_id.get(self.canonical_id(model_id))
        return spec.name if spec else model_id

    def provider_name(self, model_id: str) -> str:
        spec = self._by_id.get(self.canonical_id(model_id))
        return spec.provider.display_name if spec else "Unknown"


_catalog = ModelCatalog()


def get_catalog() -> ModelCatalog:
    return _catalog
