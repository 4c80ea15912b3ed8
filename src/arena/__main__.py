"""Serve the arena API: ``python -m src.arena`` or the ``model-arena`` script.

Env vars:
- ARENA_HOST (default 127.0.0.1)
- ARENA_PORT (default 8000)
- ARENA_RELOAD (auto-reload for local development)
"""

from __future__ import annotations

import os

import uvicorn

APP_PATH = "src.arena.api.main:app"


def server_options() -> dict:
    return {
        "host": os.getenv("ARENA_HOST", "127.0.0.1"),
        "port": int(os.getenv("ARENA_PORT", "8000")),
        "reload": os.getenv("ARENA_RELOAD", "0").lower() in ("1", "true", "yes"),
    }


def main() -> None:
    uvicorn.run(APP_PATH, **server_options())


if __name__ == "__main__":
    main()
