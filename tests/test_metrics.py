import asyncio

from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from src.arena.api.main import app
from src.arena.observability.metrics import sanitize_path
from src.arena.services.generation import GenerationExecutor
from tests.utils import FakeBackend


client = TestClient(app)


def test_metrics_endpoint_exposes_histogram():
    # Trigger a request to ensure histogram has an observation
    r = client.get("/health")
    assert r.status_code == 200

    m = client.get("/metrics")
    assert m.status_code == 200
    body = m.text

    assert "# HELP arena_request_latency_seconds" in body
    assert "# TYPE arena_request_latency_seconds histogram" in body
    assert "arena_request_latency_seconds_count" in body or "arena_request_latency_seconds_bucket" in body
    assert client.get("/api/metrics").status_code == 200


def test_sanitize_path_collapses_ids():
    assert sanitize_path("/demos/demo_123/models/gpt-4o/navigate") == "/demos"
    assert sanitize_path("/api/demos/demo_123") == "/api/demos"
    assert sanitize_path("/api") == "/api"
    assert sanitize_path("") == "/"
    assert sanitize_path("/?x=1") == "/"


def _sample(name, labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_generation_attempts_are_counted_per_outcome():
    ok = {"provider": "xai", "outcome": "success"}
    err = {"provider": "xai", "outcome": "error"}
    before_ok = _sample("arena_generation_attempts_total", ok)
    before_err = _sample("arena_generation_attempts_total", err)

    executor = GenerationExecutor(client=FakeBackend(script={"grok-3": [RuntimeError("x"), "<div></div>"]}))
    for _ in range(2):
        try:
            asyncio.run(executor.execute("p", "grok-3"))
        except Exception:
            pass

    assert _sample("arena_generation_attempts_total", ok) == before_ok + 1
    assert _sample("arena_generation_attempts_total", err) == before_err + 1
