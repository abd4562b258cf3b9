import json
import logging

import pytest

from folioledger.events import bus
from folioledger.events.schema import DayReset, EventEnvelope, TransactionAppended, TransactionRejected


def test_envelope_serialization_has_type_and_payload():
    ev = TransactionAppended(
        ts=1, ticker="AAPL", transaction_id="t1", qty=10, price=150.0, cash_after=8_500.0
    )
    env = EventEnvelope(correlation_id="t1", event=ev)
    data = json.loads(env.model_dump_json())
    assert data["schema_version"] == "v1"
    assert data["event"]["event_type"] == "transaction_appended"
    assert data["event"]["cash_after"] == 8_500.0
    assert env.model_dump()["event"]["transaction_id"] == "t1"
    assert json.loads(bus.to_line(env))["event"]["qty"] == 10


def test_event_type_is_fixed_per_class():
    with pytest.raises(ValueError):
        DayReset(event_type="other", ts=1, day="2025-01-01", removed=0, cash_after=1.0)


def test_publish_logs_single_json_line(caplog):
    caplog.set_level(logging.INFO, logger="folioledger.events")
    bus.publish(EventEnvelope(correlation_id="c1", event=TransactionRejected(ts=5, reason="validation")))
    lines = [r.getMessage() for r in caplog.records if r.name == "folioledger.events"]
    assert len(lines) == 1
    payload = json.loads(lines[0])
    assert payload["correlation_id"] == "c1"
    assert payload["event"]["reason"] == "validation"


def test_publish_falls_back_to_dlq(monkeypatch):
    written = []

    class FakeRedis:
        def __init__(self, fail_stream):
            self.fail_stream = fail_stream

        def xadd(self, stream, fields):
            if stream == self.fail_stream:
                raise ConnectionError("stream unavailable")
            written.append((stream, json.loads(fields["json"])))

    monkeypatch.setenv("REDIS_URL", "redis://example:6379/0")
    monkeypatch.setattr(bus, "_get_redis", lambda: FakeRedis(bus.STREAM_EVENTS))
    bus.publish(EventEnvelope(correlation_id="c2", event=TransactionRejected(ts=6, reason="persistence")))
    assert written[0][0] == bus.STREAM_DLQ
    assert written[0][1]["event"]["event_type"] == "transaction_rejected"


def test_publish_never_raises_when_redis_is_down(monkeypatch):
    def boom():
        raise ConnectionError("down")

    monkeypatch.setenv("REDIS_URL", "redis://example:6379/0")
    monkeypatch.setattr(bus, "_get_redis", boom)
    bus.publish(EventEnvelope(correlation_id="c3", event=TransactionRejected(ts=7, reason="validation")))
