from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Tuple, Union

from src.arena.security.auth import User, create_access_token


def auth_headers(user_id: str, name: str = "") -> Dict[str, str]:
    token = create_access_token(User(user_id=user_id, name=name))
    return {"Authorization": f"Bearer {token}"}


Reply = Union[str, Exception]


class FakeBackend:
    """Scripted backend client.

    ``script`` maps a dispatched model id to the replies for successive
    calls; the last reply repeats. Models without a script get ``default``.
    """

    def __init__(self, script: Optional[Dict[str, List[Reply]]] = None, default: Reply = "<div>ok</div>") -> None:
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.default = default
        self.calls: List[Tuple[str, str]] = []

    async def complete(self, system_prompt, user_prompt, selection):
        self.calls.append((selection.model, user_prompt))
        replies = self.script.get(selection.model)
        if replies:
            reply = replies.pop(0) if len(replies) > 1 else replies[0]
        else:
            reply = self.default
        if isinstance(reply, Exception):
            raise reply
        return reply

    def calls_for(self, model_id: str) -> int:
        return sum(1 for model, _ in self.calls if model == model_id)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class RecordingScheduler:
    """Stands in for the retry scheduler where generation is not under test."""

    def __init__(self) -> None:
        self.submitted: List[Tuple[str, str, str, str]] = []
        self.recovered = False
        self.shut_down = False

    def submit(self, output_id, demo_id, model_id, prompt):
        self.submitted.append((output_id, demo_id, model_id, prompt))

    def recover(self):
        self.recovered = True
        return []

    async def shutdown(self):
        self.shut_down = True
