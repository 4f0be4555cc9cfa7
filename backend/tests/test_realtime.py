from __future__ import annotations

import asyncio
import json

import pytest

from partnerhub.core.errors import Forbidden, InvalidTransitionPayload, NotFound
from partnerhub.routers.realtime import _sse_message, authorize_topics
from partnerhub.services import realtime as realtime_module
from partnerhub.services.realtime import RealtimeBroker, change_signal, split_topic


def test_split_topic():
    assert split_topic("partner-1") == ("partner-1", None)
    assert split_topic("partner-1:deliv-1") == ("partner-1", "deliv-1")


def test_broker_delivers_to_subscribers_of_the_topic():
    async def scenario():
        broker = RealtimeBroker()
        mine = broker.subscribe(["partner-1"])
        other = broker.subscribe(["partner-2"])

        assert broker.publish("partner-1", change_signal("submission", "partner-1")) == 1
        signal = await asyncio.wait_for(mine.queue.get(), timeout=1)
        assert other.queue.empty()

        broker.unsubscribe(mine)
        broker.unsubscribe(other)
        assert broker.subscriber_count("partner-1") == 0
        assert broker.publish("partner-1", change_signal("submission", "partner-1")) == 0
        return signal

    assert asyncio.run(scenario()) == {"type": "changed", "entity": "submission", "topic": "partner-1"}


def test_broker_accepts_publishes_from_worker_threads():
    async def scenario():
        broker = RealtimeBroker()
        subscription = broker.subscribe(["partner-1:deliv-1"])
        loop = asyncio.get_running_loop()
        delivered = await loop.run_in_executor(
            None, broker.publish, "partner-1:deliv-1", change_signal("message", "partner-1:deliv-1")
        )
        signal = await asyncio.wait_for(subscription.queue.get(), timeout=1)
        broker.unsubscribe(subscription)
        return delivered, signal

    delivered, signal = asyncio.run(scenario())
    assert delivered == 1
    assert signal["entity"] == "message"


def test_publish_change_hits_partner_and_deliverable_topics(monkeypatch):
    fresh = RealtimeBroker()
    monkeypatch.setattr(realtime_module, "broker", fresh)

    async def scenario():
        partner_sub = fresh.subscribe(["partner-1"])
        deliverable_sub = fresh.subscribe(["partner-1:deliv-1"])
        delivered = realtime_module.publish_change("partner-1", entity="submission", deliverable_id="deliv-1")
        partner_signal = await asyncio.wait_for(partner_sub.queue.get(), timeout=1)
        deliverable_signal = await asyncio.wait_for(deliverable_sub.queue.get(), timeout=1)
        return delivered, partner_signal, deliverable_signal

    delivered, partner_signal, deliverable_signal = asyncio.run(scenario())
    assert delivered == 2
    assert partner_signal["topic"] == "partner-1"
    assert deliverable_signal["topic"] == "partner-1:deliv-1"
    # Signals never carry entity state.
    assert set(partner_signal) == {"type", "entity", "topic"}


def test_authorize_topics_within_scope(db, identities):
    assert authorize_topics(db, identities.a1, ["partner-1:deliv-1", "partner-1", "partner-1"]) == [
        "partner-1",
        "partner-1:deliv-1",
    ]
    assert authorize_topics(db, identities.superadmin, ["partner-2"]) == ["partner-2"]


@pytest.mark.parametrize(
    "who,topics,error",
    [
        ("a1", ["partner-2"], Forbidden),
        ("p1", ["partner-1", "partner-2:deliv-2"], Forbidden),
        ("a1", ["partner-1:deliv-2"], NotFound),
        ("a1", ["partner-1:missing"], NotFound),
        ("a1", [], InvalidTransitionPayload),
        ("a1", ["   "], InvalidTransitionPayload),
        ("superadmin", [f"partner-{i}" for i in range(21)], InvalidTransitionPayload),
    ],
)
def test_authorize_topics_rejects(db, identities, who, topics, error):
    with pytest.raises(error):
        authorize_topics(db, getattr(identities, who), topics)


def test_sse_message_format():
    frame = _sse_message({"type": "changed", "entity": "message", "topic": "partner-1"})

    assert frame.startswith("event: message\ndata: ")
    assert frame.endswith("\n\n")
    assert json.loads(frame.split("data: ", 1)[1]) == {"type": "changed", "entity": "message", "topic": "partner-1"}


def test_stream_rejects_out_of_scope_topic(client, world, headers_for):
    resp = client.get("/api/realtime/events", params={"topic": "partner-2"}, headers=headers_for("admin-1"))

    assert resp.status_code == 403
    assert resp.json()["detail"]["code"] == "FORBIDDEN"


def test_stream_requires_authentication(client, world):
    resp = client.get("/api/realtime/events", params={"topic": "partner-1"})

    assert resp.status_code == 401
