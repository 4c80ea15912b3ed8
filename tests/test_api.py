import time

import pytest
from fastapi.testclient import TestClient

from src.arena.api.main import app
from src.arena.domain.model_catalog import get_catalog
from src.arena.infrastructure.job_store import InMemoryJobStore
from src.arena.infrastructure.output_store import InMemoryOutputStore
from src.arena.infrastructure.repository import InMemoryDemoRepository
from src.arena.services import demo_service
from src.arena.services.demo_service import DemoService
from src.arena.services.generation import GenerationExecutor
from src.arena.services.retry_scheduler import RetryPolicy, RetryScheduler
from tests.utils import FakeBackend, RecordingScheduler, RecordingSleep, auth_headers


client = TestClient(app)


@pytest.fixture()
def scheduler(monkeypatch):
    sched = RecordingScheduler()
    service = DemoService(InMemoryDemoRepository(), InMemoryOutputStore(), sched)
    monkeypatch.setattr(demo_service, "_service", service)
    return sched


def _alice():
    return auth_headers("alice", "Alice")


def _bob():
    return auth_headers("bob", "Bob")


def _create(prompt="draw a clock", headers=None):
    if headers is None:
        headers = _alice()
    r = client.post("/demos", json={"prompt": prompt}, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


def test_root_and_health():
    assert client.get("/").json()["name"] == "Model Arena API"
    for path in ("/health", "/api/health"):
        r = client.get(path)
        assert r.status_code == 200
        assert r.json()["status"] == "ok"


def test_models_catalog_is_public():
    r = client.get("/models")
    assert r.status_code == 200
    data = r.json()
    assert len(data) == len(get_catalog())
    legacy = next(m for m in data if m["id"] == "claude-3-5-haiku-latest")
    assert legacy["generatable"] is False
    assert legacy["alias_of"] == "claude-haiku-4-5-20251001"
    assert client.get("/api/models").json() == data


def test_create_demo_requires_identity(scheduler):
    r = client.post("/demos", json={"prompt": "draw a clock"})
    assert r.status_code == 401
    assert scheduler.submitted == []


def test_create_demo_schedules_default_models(scheduler):
    demo = _create()
    assert demo["owner_id"] == "alice"
    assert demo["selected_models"] == get_catalog().default_enabled_models()
    assert len(scheduler.submitted) == len(demo["selected_models"])


def test_blank_prompt_is_rejected(scheduler):
    r = client.post("/demos", json={"prompt": "   "}, headers=_alice())
    assert r.status_code == 400
    assert scheduler.submitted == []


def test_get_demo_is_shareable(scheduler):
    demo = _create()
    anon = client.get(f"/demos/{demo['demo_id']}")
    assert anon.status_code == 200
    assert anon.json()["is_owner"] is False
    owner = client.get(f"/api/demos/{demo['demo_id']}", headers=_alice())
    assert owner.json()["is_owner"] is True
    tiles = owner.json()["tiles"]
    assert len(tiles) == len(demo["selected_models"])
    assert all(t["output"]["status"] == "pending" for t in tiles)


def test_unknown_demo_is_404(scheduler):
    assert client.get("/demos/demo_missing").status_code == 404
    r = client.post("/demos/demo_missing/archive", headers=_alice())
    assert r.status_code == 404


def test_non_owner_gets_403(scheduler):
    demo = _create()
    demo_id = demo["demo_id"]
    assert client.put(f"/demos/{demo_id}/prompt", json={"prompt": "mine"}, headers=_bob()).status_code == 403
    assert client.post(f"/demos/{demo_id}/regenerate", headers=_bob()).status_code == 403
    assert client.post(f"/demos/{demo_id}/models/gpt-4o/navigate", json={"direction": "prev"}, headers=_bob()).status_code == 403


def test_list_demos_for_caller(scheduler):
    first = _create("one")
    _create("two", headers=_bob())
    client.post(f"/demos/{first['demo_id']}/archive", headers=_alice())

    assert client.get("/demos", headers=_alice()).json() == []
    listed = client.get("/demos", params={"include_archived": True}, headers=_alice()).json()
    assert [d["demo_id"] for d in listed] == [first["demo_id"]]
    assert client.get("/demos").status_code == 401


def test_regenerate_and_navigate_flow(scheduler):
    demo = _create()
    demo_id = demo["demo_id"]

    r = client.post(f"/demos/{demo_id}/models/gpt-4o/regenerate", headers=_alice())
    assert r.status_code == 202
    assert r.json()["model_id"] == "gpt-4o"

    r = client.post(f"/demos/{demo_id}/models/gpt-4o/navigate", json={"direction": "prev"}, headers=_alice())
    assert r.status_code == 200
    pinned = r.json()["selected_outputs"]["gpt-4o"]

    view = client.get(f"/demos/{demo_id}").json()
    tile = next(t for t in view["tiles"] if t["model_id"] == "gpt-4o")
    assert tile["output"]["output_id"] == pinned
    assert (tile["version_index"], tile["version_count"]) == (1, 2)

    r = client.post(f"/demos/{demo_id}/regenerate", json={"model_ids": ["gpt-4o", "grok-4"]}, headers=_alice())
    assert r.status_code == 202
    assert [o["model_id"] for o in r.json()] == ["gpt-4o", "grok-4"]
    assert "gpt-4o" not in client.get(f"/demos/{demo_id}").json()["demo"]["selected_outputs"]


def test_regenerate_without_body_uses_selected_models(scheduler):
    demo = _create()
    client.put(f"/demos/{demo['demo_id']}/models", json={"model_ids": ["grok-4"]}, headers=_alice())
    r = client.post(f"/demos/{demo['demo_id']}/regenerate", headers=_alice())
    assert r.status_code == 202
    assert [o["model_id"] for o in r.json()] == ["grok-4"]


def test_regenerate_blank_model_is_bad_request(scheduler):
    demo = _create()
    r = client.post(f"/demos/{demo['demo_id']}/models/%20/regenerate", headers=_alice())
    assert r.status_code == 400


def test_navigate_rejects_unknown_direction(scheduler):
    demo = _create()
    r = client.post(f"/demos/{demo['demo_id']}/models/gpt-4o/navigate", json={"direction": "up"}, headers=_alice())
    assert r.status_code == 400


def test_public_mode_uses_guest(monkeypatch, scheduler):
    monkeypatch.setenv("ARENA_PUBLIC_MODE", "true")
    demo = _create(headers={})
    assert demo["owner_id"] == "guest"
    assert client.get(f"/demos/{demo['demo_id']}").json()["is_owner"] is True


def test_lifespan_recovers_and_shuts_down(scheduler):
    with TestClient(app) as c:
        assert c.get("/health").status_code == 200
        assert scheduler.recovered
    assert scheduler.shut_down


def test_generation_started_by_a_route_completes_on_the_app_loop(monkeypatch):
    outputs = InMemoryOutputStore()
    real = RetryScheduler(
        GenerationExecutor(client=FakeBackend()),
        outputs,
        InMemoryJobStore(),
        policy=RetryPolicy(),
        sleep=RecordingSleep(),
    )
    monkeypatch.setattr(demo_service, "_service", DemoService(InMemoryDemoRepository(), outputs, real))

    with TestClient(app) as c:
        demo = c.post("/demos", json={"prompt": "draw a clock"}, headers=_alice()).json()
        deadline = time.monotonic() + 5
        while True:
            tiles = c.get(f"/demos/{demo['demo_id']}").json()["tiles"]
            statuses = {t["output"]["status"] for t in tiles}
            if statuses == {"complete"} or time.monotonic() > deadline:
                break
            time.sleep(0.02)

    assert statuses == {"complete"}
    assert len(tiles) == len(get_catalog().default_enabled_models())
