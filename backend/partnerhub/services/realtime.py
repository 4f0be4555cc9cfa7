"""In-process live-update broker.

Signals only tell subscribers that something under a topic changed; clients
re-query through the scoped endpoints. Topics are ``<partner_id>`` and
``<partner_id>:<deliverable_id>``. ``publish`` may be called from worker
threads (sync routes), so delivery hops onto each subscriber's loop.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Set

logger = logging.getLogger("realtime")


def partner_topic(partner_id: str) -> str:
    return partner_id


def deliverable_topic(partner_id: str, deliverable_id: str) -> str:
    return f"{partner_id}:{deliverable_id}"


def split_topic(topic: str) -> tuple[str, Optional[str]]:
    partner_id, _, deliverable_id = topic.partition(":")
    return partner_id, deliverable_id or None


def change_signal(entity: str, topic: str) -> dict:
    return {"type": "changed", "entity": entity, "topic": topic}


@dataclass(eq=False)
class Subscription:
    topics: frozenset[str]
    loop: asyncio.AbstractEventLoop
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)


class RealtimeBroker:
    def __init__(self) -> None:
        self._subscribers: Dict[str, Set[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, topics: Iterable[str]) -> Subscription:
        subscription = Subscription(topics=frozenset(topics), loop=asyncio.get_running_loop())
        with self._lock:
            for topic in subscription.topics:
                self._subscribers.setdefault(topic, set()).add(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            for topic in subscription.topics:
                subscribers = self._subscribers.get(topic)
                if not subscribers:
                    continue
                subscribers.discard(subscription)
                if not subscribers:
                    self._subscribers.pop(topic, None)

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, ()))

    def publish(self, topic: str, signal: dict) -> int:
        with self._lock:
            targets = list(self._subscribers.get(topic, ()))
        delivered = 0
        for subscription in targets:
            try:
                subscription.loop.call_soon_threadsafe(subscription.queue.put_nowait, signal)
            except RuntimeError:
                # Loop already closed; the stream is gone.
                self.unsubscribe(subscription)
                continue
            delivered += 1
        return delivered


broker = RealtimeBroker()


def publish_change(partner_id: str, *, entity: str, deliverable_id: Optional[str] = None) -> int:
    topics = [partner_topic(partner_id)]
    if deliverable_id:
        topics.append(deliverable_topic(partner_id, deliverable_id))
    delivered = 0
    for topic in topics:
        delivered += broker.publish(topic, change_signal(entity, topic))
    logger.debug("realtime_published", extra={"partner_id": partner_id, "topic": ",".join(topics)})
    return delivered
