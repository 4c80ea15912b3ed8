"""Best-effort Redis pub/sub for demo and output status changes.

Clients that prefer pushing over polling subscribe to
``arena.events.<event_type>``. Without ``REDIS_URL`` publishing is a no-op.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional

import redis

from ..domain.models import Demo, Output


logger = logging.getLogger("arena.events")

DEMO_CREATED = "demo.created"
OUTPUT_STATUS = "output.status"


class _RedisPublisher:
    def __init__(self, url: str) -> None:
        self._url = url
        self._client: Optional[redis.Redis] = None
        self._connect()

    def _connect(self) -> None:
        try:
            client = redis.Redis.from_url(self._url, socket_timeout=0.5)
            client.ping()
            self._client = client
        except Exception:
            logger.debug("Redis unavailable at %s", self._url, exc_info=True)
            self._client = None

    def publish(self, channel: str, payload: Dict[str, Any]) -> bool:
        if self._client is None:
            self._connect()
        if self._client is None:
            return False
        try:
            self._client.publish(channel, json.dumps(payload, default=str))
            return True
        except Exception:
            # Drop the connection; the next event reconnects.
            logger.debug("Dropping %s event after publish failure", channel, exc_info=True)
            self._client = None
            return False


_publisher: Optional[_RedisPublisher] = None


def _get_publisher() -> Optional[_RedisPublisher]:
    global _publisher
    if _publisher is None:
        url = os.getenv("REDIS_URL")
        if url:
            _publisher = _RedisPublisher(url)
    return _publisher


def publish_event(event_type: str, payload: Dict[str, Any]) -> bool:
    """Publish ``payload`` on ``arena.events.<event_type>``; never raises."""
    publisher = _get_publisher()
    if publisher is None:
        return False
    return publisher.publish(f"arena.events.{event_type}", payload)


def publish_demo_created(demo: Demo) -> bool:
    return publish_event(
        DEMO_CREATED,
        {"demo_id": demo.demo_id, "owner_id": demo.owner_id, "models": list(demo.selected_models)},
    )


def publish_output_status(output: Output) -> bool:
    payload: Dict[str, Any] = {
        "demo_id": output.demo_id,
        "output_id": output.output_id,
        "model_id": output.model_id,
        "status": output.status.value,
    }
    if output.error:
        payload["error"] = output.error
    return publish_event(OUTPUT_STATUS, payload)
