import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)


@pytest.fixture(autouse=True)
def _isolate_singletons(monkeypatch):
    """Give every test fresh in-memory stores and a quiet environment."""
    for key in ("REDIS_URL", "ARENA_PUBLIC_MODE", "ARENA_STORE_IMPL", "ARENA_LLM_TIMEOUT", "ARENA_REQUIRE_MONGO"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("JWT_SECRET", "unit-test-secret")

    from src.arena.infrastructure import events, job_store, output_store, repository
    from src.arena.services import demo_service

    monkeypatch.setattr(events, "_publisher", None)
    monkeypatch.setattr(output_store, "_store", None)
    monkeypatch.setattr(job_store, "_job_store", None)
    monkeypatch.setattr(repository, "_repo", repository.InMemoryDemoRepository())
    monkeypatch.setattr(repository, "_mongo_repo", None)
    monkeypatch.setattr(demo_service, "_service", None)
