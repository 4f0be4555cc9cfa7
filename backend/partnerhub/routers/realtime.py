from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncGenerator, List

from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from partnerhub.core import rbac
from partnerhub.core.deps import get_current_identity
from partnerhub.core.errors import Forbidden, InvalidTransitionPayload, NotFound
from partnerhub.core.identity import ResolvedIdentity
from partnerhub.core.settings import settings
from partnerhub.db.session import get_db
from partnerhub.models.deliverable import Deliverable
from partnerhub.services.realtime import broker, split_topic

router = APIRouter(prefix="/api/realtime", tags=["realtime"])
logger = logging.getLogger("realtime")

_MAX_TOPICS = 20


def _sse_message(payload: dict) -> str:
    data = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return f"event: message\ndata: {data}\n\n"


def authorize_topics(db: Session, identity: ResolvedIdentity, topics: List[str]) -> List[str]:
    """Validate every requested topic against the caller's scope."""
    cleaned = sorted({topic.strip() for topic in topics if topic and topic.strip()})
    if not cleaned:
        raise InvalidTransitionPayload("At least one topic is required", field="topic")
    if len(cleaned) > _MAX_TOPICS:
        raise InvalidTransitionPayload(f"At most {_MAX_TOPICS} topics per stream", field="topic")

    scope = rbac.visible_partner_ids(db, identity)
    for topic in cleaned:
        partner_id, deliverable_id = split_topic(topic)
        if not rbac.can_view_partner(scope, partner_id):
            raise Forbidden("Topic is outside your access scope", topic=topic)
        if deliverable_id is not None:
            deliverable = db.get(Deliverable, deliverable_id)
            if deliverable is None or deliverable.partner_id != partner_id:
                raise NotFound("Deliverable not found", deliverable_id=deliverable_id)
    return cleaned


@router.get("/events")
async def stream_events(
    request: Request,
    topic: List[str] = Query(...),
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> StreamingResponse:
    topics = await run_in_threadpool(authorize_topics, db, identity, topic)
    subscription = broker.subscribe(topics)
    logger.info(
        "realtime_subscribed",
        extra={"principal_id": identity.principal_id, "topic": ",".join(topics)},
    )

    async def event_stream() -> AsyncGenerator[str, None]:
        try:
            yield _sse_message({"type": "subscribed", "topics": topics})
            while True:
                if await request.is_disconnected():
                    break
                try:
                    signal = await asyncio.wait_for(
                        subscription.queue.get(),
                        timeout=settings.realtime_keepalive_seconds,
                    )
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                yield _sse_message(signal)
        finally:
            broker.unsubscribe(subscription)

    headers = {
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "X-Accel-Buffering": "no",
    }
    return StreamingResponse(event_stream(), headers=headers, media_type="text/event-stream")
