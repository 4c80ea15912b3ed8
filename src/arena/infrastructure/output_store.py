from __future__ import annotations

import logging
import os
import uuid
from datetime import UTC, datetime, timedelta
from threading import Lock, RLock
from typing import Dict, List, Optional, Protocol

from ..domain.models import Output, OutputStatus


logger = logging.getLogger("arena.store")


class OutputStore(Protocol):
    def create_pending(self, demo_id: str, model_id: str) -> Output: ...
    def get(self, output_id: str) -> Optional[Output]: ...
    def set_generating(self, output_id: str) -> Optional[Output]: ...
    def set_complete(self, output_id: str, html: str, css: str) -> Optional[Output]: ...
    def set_error(self, output_id: str, message: str) -> Optional[Output]: ...
    def list_by_demo(self, demo_id: str) -> List[Output]: ...


_clock_lock = Lock()
_last_stamp: Optional[datetime] = None


def next_created_at() -> datetime:
    """Millisecond timestamps that never repeat within this process.

    Version order is derived from ``created_at``, so two outputs created in
    the same millisecond get bumped apart.
    """
    global _last_stamp
    with _clock_lock:
        now = datetime.now(UTC)
        now = now.replace(microsecond=(now.microsecond // 1000) * 1000)
        if _last_stamp is not None and now <= _last_stamp:
            now = _last_stamp + timedelta(milliseconds=1)
        _last_stamp = now
        return now


def new_output_id() -> str:
    return f"out_{uuid.uuid4().hex}"


# Allowed source states for each transition.
_TRANSITIONS: Dict[OutputStatus, tuple[OutputStatus, ...]] = {
    OutputStatus.GENERATING: (OutputStatus.PENDING,),
    OutputStatus.COMPLETE: (OutputStatus.PENDING, OutputStatus.GENERATING),
    OutputStatus.ERROR: (OutputStatus.PENDING, OutputStatus.GENERATING),
}


class InMemoryOutputStore:
    """Thread-safe in-memory output store indexed by demo id."""

    def __init__(self) -> None:
        self._outputs: Dict[str, Output] = {}
        self._by_demo: Dict[str, List[str]] = {}
        self._lock = RLock()

    def create_pending(self, demo_id: str, model_id: str) -> Output:
        with self._lock:
            output = Output(
                output_id=new_output_id(),
                demo_id=demo_id,
                model_id=model_id,
                created_at=next_created_at(),
            )
            self._outputs[output.output_id] = output
            self._by_demo.setdefault(demo_id, []).append(output.output_id)
            return output.model_copy()

    def get(self, output_id: str) -> Optional[Output]:
        with self._lock:
            out = self._outputs.get(output_id)
            return out.model_copy() if out else None

    def _transition(self, output_id: str, target: OutputStatus, **fields) -> Optional[Output]:
        with self._lock:
            out = self._outputs.get(output_id)
            if out is None or out.status not in _TRANSITIONS[target]:
                return None
            updated = out.model_copy(update={"status": target, **fields})
            self._outputs[output_id] = updated
            return updated.model_copy()

    def set_generating(self, output_id: str) -> Optional[Output]:
        return self._transition(output_id, OutputStatus.GENERATING)

    def set_complete(self, output_id: str, html: str, css: str) -> Optional[Output]:
        return self._transition(output_id, OutputStatus.COMPLETE, html=html, css=css, error=None)

    def set_error(self, output_id: str, message: str) -> Optional[Output]:
        return self._transition(output_id, OutputStatus.ERROR, error=message)

    def list_by_demo(self, demo_id: str) -> List[Output]:
        with self._lock:
            return [self._outputs[oid].model_copy() for oid in self._by_demo.get(demo_id, [])]


_store: OutputStore | None = None


def get_output_store() -> OutputStore:
    global _store
    if _store is not None:
        return _store
    impl = os.getenv("ARENA_STORE_IMPL", "memory").lower()
    if impl == "mongo":
        try:
            from .store_mongo import MongoOutputStore

            _store = MongoOutputStore()
            return _store
        except Exception:
            logger.warning("Mongo output store unavailable; using in-memory store", exc_info=True)
    _store = InMemoryOutputStore()
    return _store
