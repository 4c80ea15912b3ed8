from __future__ import annotations

"""MongoDB-backed demo, output and job stores.

If Mongo is unreachable and ARENA_REQUIRE_MONGO is not true, each store
falls back to its in-memory sibling so dev and CI keep working.
"""

import logging
import os
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from ..domain.models import Demo, Job, JobStatus, Output, OutputStatus
from .job_store import InMemoryJobStore
from .output_store import InMemoryOutputStore, _TRANSITIONS, new_output_id, next_created_at
from .repository import DemoMutator, InMemoryDemoRepository, build_demo


logger = logging.getLogger("arena.store")

_CAS_ATTEMPTS = int(os.getenv("ARENA_MONGO_CAS_ATTEMPTS", "8"))


def _require_mongo() -> bool:
    return os.getenv("ARENA_REQUIRE_MONGO", "false").lower() in ("1", "true", "yes")


def _connect_db():
    mongo_url = os.getenv("MONGO_URL", "mongodb://localhost:27017")
    mongo_db = os.getenv("MONGO_DB", "arena")
    client = MongoClient(mongo_url, serverSelectionTimeoutMS=500, tz_aware=True)
    # Trigger server selection
    client.server_info()
    return client[mongo_db]


def _strip_id(doc: Dict[str, Any]) -> Dict[str, Any]:
    doc = dict(doc)
    doc.pop("_id", None)
    return doc


class _MongoBacked:
    collection_name = ""

    def __init__(self) -> None:
        self._collection = None
        try:
            db = _connect_db()
            self._collection = db[self.collection_name]
            self._create_indexes()
        except PyMongoError:
            if _require_mongo():
                raise RuntimeError("Mongo store required but not available")
            logger.warning("Mongo unreachable; %s falls back to memory", self.collection_name)
            self._collection = None

    def _create_indexes(self) -> None:  # pragma: no cover - overridden
        pass

    def _use_fallback(self) -> bool:
        return self._collection is None


class MongoDemoRepository(_MongoBacked):
    collection_name = "demos"

    def __init__(self) -> None:
        self._fallback = InMemoryDemoRepository()
        super().__init__()

    def _create_indexes(self) -> None:
        self._collection.create_index("demo_id", unique=True)
        self._collection.create_index([("owner_id", ASCENDING), ("created_at", ASCENDING)])

    @staticmethod
    def _to_doc(demo: Demo) -> Dict[str, Any]:
        # Model ids contain dots, so pins are stored as pairs rather than keys.
        data = demo.model_dump()
        data["selected_outputs"] = [
            {"model_id": mid, "output_id": oid} for mid, oid in demo.selected_outputs.items()
        ]
        return data

    @staticmethod
    def _to_demo(doc: Dict[str, Any]) -> Demo:
        data = _strip_id(doc)
        pins = data.get("selected_outputs") or []
        if isinstance(pins, list):
            data["selected_outputs"] = {p["model_id"]: p["output_id"] for p in pins}
        return Demo(**data)

    def list_by_owner(self, owner_id: str) -> List[Demo]:
        if self._use_fallback():
            return self._fallback.list_by_owner(owner_id)
        return [self._to_demo(doc) for doc in self._collection.find({"owner_id": owner_id})]

    def get(self, demo_id: str) -> Optional[Demo]:
        if self._use_fallback():
            return self._fallback.get(demo_id)
        doc = self._collection.find_one({"demo_id": demo_id})
        return self._to_demo(doc) if doc else None

    def create(self, owner_id: str, prompt: str, selected_models: List[str]) -> Demo:
        if self._use_fallback():
            return self._fallback.create(owner_id, prompt, selected_models)
        demo = build_demo(owner_id, prompt, selected_models)
        self._collection.insert_one(self._to_doc(demo))
        return demo

    def update(self, demo_id: str, mutator: DemoMutator) -> Optional[Demo]:
        """Compare-and-swap on ``revision`` until the write lands."""
        if self._use_fallback():
            return self._fallback.update(demo_id, mutator)
        for _ in range(_CAS_ATTEMPTS):
            doc = self._collection.find_one({"demo_id": demo_id})
            if not doc:
                return None
            current = self._to_demo(doc)
            changed = mutator(current.model_copy(deep=True))
            if changed is None:
                return current
            changed.revision = current.revision + 1
            changed.updated_at = datetime.now(UTC)
            res = self._collection.replace_one(
                {"demo_id": demo_id, "revision": current.revision},
                self._to_doc(changed),
            )
            if res.modified_count:
                return changed
            logger.debug("Demo %s revision moved during update; retrying", demo_id)
        raise RuntimeError(f"Could not update demo {demo_id}: too many concurrent writers")


class MongoOutputStore(_MongoBacked):
    collection_name = "outputs"

    def __init__(self) -> None:
        self._fallback = InMemoryOutputStore()
        super().__init__()

    def _create_indexes(self) -> None:
        self._collection.create_index("output_id", unique=True)
        self._collection.create_index([("demo_id", ASCENDING), ("created_at", ASCENDING)])

    @staticmethod
    def _to_doc(output: Output) -> Dict[str, Any]:
        data = output.model_dump()
        data["status"] = output.status.value
        return data

    def create_pending(self, demo_id: str, model_id: str) -> Output:
        if self._use_fallback():
            return self._fallback.create_pending(demo_id, model_id)
        output = Output(
            output_id=new_output_id(),
            demo_id=demo_id,
            model_id=model_id,
            created_at=next_created_at(),
        )
        self._collection.insert_one(self._to_doc(output))
        return output

    def get(self, output_id: str) -> Optional[Output]:
        if self._use_fallback():
            return self._fallback.get(output_id)
        doc = self._collection.find_one({"output_id": output_id})
        return Output(**_strip_id(doc)) if doc else None

    def _transition(self, output_id: str, target: OutputStatus, **fields: Any) -> Optional[Output]:
        allowed = [s.value for s in _TRANSITIONS[target]]
        doc = self._collection.find_one_and_update(
            {"output_id": output_id, "status": {"$in": allowed}},
            {"$set": {"status": target.value, **fields}},
            return_document=ReturnDocument.AFTER,
        )
        return Output(**_strip_id(doc)) if doc else None

    def set_generating(self, output_id: str) -> Optional[Output]:
        if self._use_fallback():
            return self._fallback.set_generating(output_id)
        return self._transition(output_id, OutputStatus.GENERATING)

    def set_complete(self, output_id: str, html: str, css: str) -> Optional[Output]:
        if self._use_fallback():
            return self._fallback.set_complete(output_id, html, css)
        return self._transition(output_id, OutputStatus.COMPLETE, html=html, css=css, error=None)

    def set_error(self, output_id: str, message: str) -> Optional[Output]:
        if self._use_fallback():
            return self._fallback.set_error(output_id, message)
        return self._transition(output_id, OutputStatus.ERROR, error=message)

    def list_by_demo(self, demo_id: str) -> List[Output]:
        if self._use_fallback():
            return self._fallback.list_by_demo(demo_id)
        return [Output(**_strip_id(doc)) for doc in self._collection.find({"demo_id": demo_id})]


class MongoJobStore(_MongoBacked):
    collection_name = "jobs"

    def __init__(self) -> None:
        self._fallback = InMemoryJobStore()
        super().__init__()

    def _create_indexes(self) -> None:
        self._collection.create_index("job_id", unique=True)
        self._collection.create_index("status")

    def save(self, job: Job) -> Job:
        if self._use_fallback():
            return self._fallback.save(job)
        data = job.model_dump()
        data["status"] = job.status.value
        self._collection.replace_one({"job_id": job.job_id}, data, upsert=True)
        return job

    def get(self, job_id: str) -> Optional[Job]:
        if self._use_fallback():
            return self._fallback.get(job_id)
        doc = self._collection.find_one({"job_id": job_id})
        return Job(**_strip_id(doc)) if doc else None

    def update(self, job_id: str, **fields: Any) -> Optional[Job]:
        if self._use_fallback():
            return self._fallback.update(job_id, **fields)
        fields["updated_at"] = datetime.now(UTC)
        if isinstance(fields.get("status"), JobStatus):
            fields["status"] = fields["status"].value
        doc = self._collection.find_one_and_update(
            {"job_id": job_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        return Job(**_strip_id(doc)) if doc else None

    def list_unfinished(self) -> List[Job]:
        if self._use_fallback():
            return self._fallback.list_unfinished()
        open_states = [s.value for s in JobStatus if not s.terminal]
        return [Job(**_strip_id(doc)) for doc in self._collection.find({"status": {"$in": open_states}})]
