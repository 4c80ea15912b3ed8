from src.arena import __main__ as entry


def test_server_options_from_env(monkeypatch):
    monkeypatch.setenv("ARENA_HOST", "0.0.0.0")
    monkeypatch.setenv("ARENA_PORT", "9100")
    monkeypatch.setenv("ARENA_RELOAD", "true")
    assert entry.server_options() == {"host": "0.0.0.0", "port": 9100, "reload": True}


def test_main_runs_uvicorn_with_app_path(monkeypatch):
    calls = []
    monkeypatch.delenv("ARENA_HOST", raising=False)
    monkeypatch.delenv("ARENA_PORT", raising=False)
    monkeypatch.delenv("ARENA_RELOAD", raising=False)
    monkeypatch.setattr(entry.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
    entry.main()
    assert calls == [("src.arena.api.main:app", {"host": "127.0.0.1", "port": 8000, "reload": False})]
