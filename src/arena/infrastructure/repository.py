from __future__ import annotations

import logging
import os
import uuid
from datetime import UTC, datetime
from threading import RLock
from typing import Callable, Dict, List, Optional, Protocol

from ..domain.models import Demo


logger = logging.getLogger("arena.store")

# A mutator receives a private copy of the demo and returns the copy to
# persist, or ``None`` to leave the row untouched.
DemoMutator = Callable[[Demo], Optional[Demo]]


class DemoRepository(Protocol):
    def list_by_owner(self, owner_id: str) -> List[Demo]: ...
    def get(self, demo_id: str) -> Optional[Demo]: ...
    def create(self, owner_id: str, prompt: str, selected_models: List[str]) -> Demo: ...
    def update(self, demo_id: str, mutator: DemoMutator) -> Optional[Demo]: ...


def new_demo_id() -> str:
    return f"demo_{uuid.uuid4().hex}"


def build_demo(owner_id: str, prompt: str, selected_models: List[str]) -> Demo:
    now = datetime.now(UTC)
    return Demo(
        demo_id=new_demo_id(),
        owner_id=owner_id,
        prompt=prompt,
        created_at=now,
        updated_at=now,
        selected_models=list(dict.fromkeys(selected_models)),
    )


class InMemoryDemoRepository:
    """In-memory demo rows guarded by one coarse RLock.

    ``update`` runs the whole read-modify-write under the lock, so two
    concurrent mutations of the same demo never interleave.
    """

    def __init__(self) -> None:
        self._demos: Dict[str, Demo] = {}
        self._lock = RLock()

    def list_by_owner(self, owner_id: str) -> List[Demo]:
        with self._lock:
            return [d.model_copy(deep=True) for d in self._demos.values() if d.owner_id == owner_id]

    def get(self, demo_id: str) -> Optional[Demo]:
        with self._lock:
            demo = self._demos.get(demo_id)
            return demo.model_copy(deep=True) if demo else None

    def create(self, owner_id: str, prompt: str, selected_models: List[str]) -> Demo:
        demo = build_demo(owner_id, prompt, selected_models)
        with self._lock:
            self._demos[demo.demo_id] = demo
            return demo.model_copy(deep=True)

    def update(self, demo_id: str, mutator: DemoMutator) -> Optional[Demo]:
        with self._lock:
            current = self._demos.get(demo_id)
            if current is None:
                return None
            changed = mutator(current.model_copy(deep=True))
            if changed is None:
                return current.model_copy(deep=True)
            changed.revision = current.revision + 1
            changed.updated_at = datetime.now(UTC)
            self._demos[demo_id] = changed
            return changed.model_copy(deep=True)


_repo: DemoRepository = InMemoryDemoRepository()
_mongo_repo: DemoRepository | None = None


def get_repo() -> DemoRepository:
    global _mongo_repo
    impl = os.getenv("ARENA_STORE_IMPL", "memory").lower()
    if impl == "mongo":
        if _mongo_repo is None:
            try:
                from .store_mongo import MongoDemoRepository

                _mongo_repo = MongoDemoRepository()
            except Exception:
                logger.warning("Mongo demo repository unavailable; using in-memory repository", exc_info=True)
                _mongo_repo = _repo
        return _mongo_repo
    return _repo
