"""
Ledger event side channel.

Each envelope is serialized once into a compact JSON line, appended to the
Redis stream `EVENTS_STREAM` (or `EVENTS_DLQ` when that write fails) and
always written to the `folioledger.events` logger. Nothing here raises into
the caller: ledger commands must not fail because Redis is down.
"""
from __future__ import annotations

import json
import logging
import os

import redis

from .schema import EventEnvelope
from ..metrics.ledger import get_events_total

STREAM_EVENTS = os.getenv("EVENTS_STREAM", "folioledger.events")
STREAM_DLQ = os.getenv("EVENTS_DLQ", "folioledger.dlq")

log = logging.getLogger("folioledger.events")


def _redis_url() -> str:
    # empty string disables the stream and keeps log-only mode
    return os.getenv("REDIS_URL", "redis://localhost:6379/0")


def _get_redis():
    return redis.Redis.from_url(_redis_url(), decode_responses=True, socket_connect_timeout=0.5)


def to_line(env: EventEnvelope) -> str:
    payload = env.model_dump(include={"schema_version", "correlation_id", "sequence"})
    payload["event"] = env.event.model_dump()
    return json.dumps(payload, separators=(",", ":"))


def _append_to_stream(line: str) -> None:
    for stream in (STREAM_EVENTS, STREAM_DLQ):
        try:
            _get_redis().xadd(stream, {"json": line})
            return
        except Exception as e:
            log.debug(f"xadd to {stream} failed: {e}")


def publish(env: EventEnvelope) -> None:
    """Count, stream and log one ledger event."""
    try:
        get_events_total().labels(env.event.event_type).inc()
    except Exception:
        pass
    line = to_line(env)
    if _redis_url():
        _append_to_stream(line)
    log.info(line)
