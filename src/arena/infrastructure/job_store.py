from __future__ import annotations

"""Durable retry obligations.

Each generation job writes its attempt count and next attempt time here so a
restarted process can pick up where the previous one stopped.
"""

import logging
import os
from datetime import UTC, datetime
from threading import RLock
from typing import Any, Dict, List, Optional, Protocol

from ..domain.models import Job, JobStatus


logger = logging.getLogger("arena.store")


class JobStore(Protocol):
    def save(self, job: Job) -> Job: ...
    def get(self, job_id: str) -> Optional[Job]: ...
    def update(self, job_id: str, **fields: Any) -> Optional[Job]: ...
    def list_unfinished(self) -> List[Job]: ...


class InMemoryJobStore:
    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = RLock()

    def save(self, job: Job) -> Job:
        with self._lock:
            self._jobs[job.job_id] = job.model_copy()
            return job

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy() if job else None

    def update(self, job_id: str, **fields: Any) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            fields["updated_at"] = datetime.now(UTC)
            updated = job.model_copy(update=fields)
            self._jobs[job_id] = updated
            return updated.model_copy()

    def list_unfinished(self) -> List[Job]:
        with self._lock:
            return [j.model_copy() for j in self._jobs.values() if not JobStatus(j.status).terminal]


_job_store: JobStore | None = None


def get_job_store() -> JobStore:
    global _job_store
    if _job_store is not None:
        return _job_store
    impl = os.getenv("ARENA_STORE_IMPL", "memory").lower()
    if impl == "mongo":
        try:
            from .store_mongo import MongoJobStore

            _job_store = MongoJobStore()
            return _job_store
        except Exception:
            logger.warning("Mongo job store unavailable; using in-memory store", exc_info=True)
    _job_store = InMemoryJobStore()
    return _job_store
