"""Demo workflow: creation, regeneration, selection state and reads.

Mutations are synchronous against the stores and return as soon as the
pending outputs exist; generation itself runs in the retry scheduler. Demo
rows are only ever changed through ``repo.update`` so each read-modify-write
is applied atomically.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from ..domain.errors import NotAuthorized, NotFound
from ..domain.model_catalog import ModelCatalog, get_catalog
from ..domain.models import Demo, DemoView, Output
from ..infrastructure.events import publish_demo_created
from ..infrastructure.job_store import get_job_store
from ..infrastructure.output_store import OutputStore, get_output_store
from ..infrastructure.repository import DemoMutator, DemoRepository, get_repo
from ..observability.metrics import DEMOS_CREATED
from .generation import GenerationExecutor
from .retry_scheduler import RetryScheduler
from .version_resolver import current_index, resolve_demo_outputs, version_key


logger = logging.getLogger("arena.demos")

DIRECTIONS = ("prev", "next")


def _clean_prompt(prompt: str) -> str:
    text = (prompt or "").strip()
    if not text:
        raise ValueError("Prompt must not be empty")
    return text


def _unique(model_ids: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(m for m in model_ids if m))


class DemoService:
    def __init__(
        self,
        repo: DemoRepository,
        outputs: OutputStore,
        scheduler: RetryScheduler,
        catalog: Optional[ModelCatalog] = None,
    ) -> None:
        self._repo = repo
        self._outputs = outputs
        self._scheduler = scheduler
        self._catalog = catalog or get_catalog()

    @property
    def scheduler(self) -> RetryScheduler:
        return self._scheduler

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def list_demos(
        self,
        owner_id: str,
        include_archived: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Demo]:
        demos = [d for d in self._repo.list_by_owner(owner_id) if include_archived or not d.archived]
        demos.sort(key=lambda d: d.created_at, reverse=True)
        if offset:
            demos = demos[offset:]
        if limit is not None:
            demos = demos[:limit]
        return demos

    def get_demo(self, demo_id: str, viewer_id: Optional[str] = None) -> DemoView:
        demo = self._require(demo_id)
        resolved = resolve_demo_outputs(
            self._outputs.list_by_demo(demo_id),
            demo.selected_models,
            demo.selected_outputs,
            self._catalog,
        )
        return DemoView(
            demo=demo,
            is_owner=viewer_id is not None and viewer_id == demo.owner_id,
            selected_models=resolved.selected_models,
            outputs=resolved.outputs,
            tiles=resolved.tiles,
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def create_demo(self, owner_id: str, prompt: str) -> Demo:
        text = _clean_prompt(prompt)
        models = self._catalog.default_enabled_models()
        demo = self._repo.create(owner_id, text, models)
        for model_id in models:
            self._start_generation(demo, model_id)
        DEMOS_CREATED.inc()
        publish_demo_created(demo)
        logger.info("Created demo %s with %d models", demo.demo_id, len(models))
        return demo

    def update_prompt(self, demo_id: str, owner_id: str, prompt: str) -> Demo:
        text = _clean_prompt(prompt)

        def _set(demo: Demo) -> Optional[Demo]:
            if demo.prompt == text:
                return None
            demo.prompt = text
            return demo

        return self._update_owned(demo_id, owner_id, _set)

    def update_selected_models(self, demo_id: str, owner_id: str, model_ids: Iterable[str]) -> Demo:
        models = _unique(model_ids)

        def _set(demo: Demo) -> Optional[Demo]:
            demo.selected_models = models
            return demo

        return self._update_owned(demo_id, owner_id, _set)

    def regenerate_models(
        self,
        demo_id: str,
        owner_id: str,
        model_ids: Optional[Iterable[str]] = None,
    ) -> List[Output]:
        """Add a new version for each model; old versions are kept.

        Without ``model_ids`` the demo's selected generatable models are used.
        Pins for the regenerated models are cleared so reads fall back to the
        newest version once it lands.
        """
        demo = self._owned(demo_id, owner_id)
        if model_ids is None:
            targets = [m for m in demo.selected_models if self._catalog.is_generatable(m)]
        else:
            targets = _unique(model_ids)
        if not targets:
            return []

        def _clear_pins(current: Demo) -> Optional[Demo]:
            if not any(m in current.selected_outputs for m in targets):
                return None
            for m in targets:
                current.selected_outputs.pop(m, None)
            return current

        updated = self._repo.update(demo_id, _clear_pins)
        if updated is None:
            raise NotFound("Demo", demo_id)
        created = [self._start_generation(updated, model_id) for model_id in targets]
        logger.info("Regenerating %d model(s) for demo %s", len(created), demo_id)
        return created

    def regenerate_single(self, demo_id: str, owner_id: str, model_id: str) -> Output:
        model_id = (model_id or "").strip()
        if not model_id:
            raise ValueError("model_id must not be empty")
        return self.regenerate_models(demo_id, owner_id, [model_id])[0]

    def navigate_version(self, demo_id: str, owner_id: str, model_id: str, direction: str) -> Demo:
        """Move the pin for ``model_id`` one version back or forward, clamped."""
        if direction not in DIRECTIONS:
            raise ValueError(f"direction must be one of {DIRECTIONS}")

        def _step(demo: Demo) -> Optional[Demo]:
            versions = [o for o in self._outputs.list_by_demo(demo_id) if o.model_id == model_id]
            if len(versions) <= 1:
                return None
            versions.sort(key=version_key)
            idx = current_index(versions, demo.selected_outputs.get(model_id))
            if direction == "prev":
                target = max(idx - 1, 0)
            else:
                target = min(idx + 1, len(versions) - 1)
            if target == idx:
                return None
            demo.selected_outputs[model_id] = versions[target].output_id
            return demo

        return self._update_owned(demo_id, owner_id, _step)

    def archive(self, demo_id: str, owner_id: str) -> Demo:
        return self._set_archived(demo_id, owner_id, True)

    def unarchive(self, demo_id: str, owner_id: str) -> Demo:
        return self._set_archived(demo_id, owner_id, False)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _set_archived(self, demo_id: str, owner_id: str, archived: bool) -> Demo:
        def _set(demo: Demo) -> Optional[Demo]:
            if demo.archived == archived:
                return None
            demo.archived = archived
            return demo

        return self._update_owned(demo_id, owner_id, _set)

    def _start_generation(self, demo: Demo, model_id: str) -> Output:
        output = self._outputs.create_pending(demo.demo_id, model_id)
        self._scheduler.submit(output.output_id, demo.demo_id, model_id, demo.prompt)
        return output

    def _require(self, demo_id: str) -> Demo:
        demo = self._repo.get(demo_id)
        if demo is None:
            raise NotFound("Demo", demo_id)
        return demo

    def _owned(self, demo_id: str, owner_id: str) -> Demo:
        demo = self._require(demo_id)
        if demo.owner_id != owner_id:
            raise NotAuthorized("Only the demo owner can change it")
        return demo

    def _update_owned(self, demo_id: str, owner_id: str, mutator: DemoMutator) -> Demo:
        self._owned(demo_id, owner_id)
        updated = self._repo.update(demo_id, mutator)
        if updated is None:
            raise NotFound("Demo", demo_id)
        return updated


_service: Optional[DemoService] = None


def get_demo_service() -> DemoService:
    """Process-wide service wired to the configured stores."""
    global _service
    if _service is None:
        outputs = get_output_store()
        scheduler = RetryScheduler(GenerationExecutor(), outputs, get_job_store())
        _service = DemoService(get_repo(), outputs, scheduler)
    return _service
