from __future__ import annotations

import argparse
import logging
import time
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from partnerhub.core.logging import configure_logging
from partnerhub.core.settings import settings
from partnerhub.db.session import SessionLocal
from partnerhub.models.enums import NotificationDeliveryStatus
from partnerhub.models.notification_delivery import NotificationDelivery
from partnerhub.models.partner import PartnerMember
from partnerhub.services.email import EmailSendError, email_enabled, send_email
from partnerhub.services.notification_deliveries import build_email_content, get_due_email_deliveries


logger = logging.getLogger("notification_worker")


def process_deliveries(db: Session, *, limit: int = 50) -> int:
    if not email_enabled():
        logger.info("Email provider disabled; skipping delivery processing.")
        return 0
    if not settings.email_from:
        logger.warning("EMAIL_FROM not configured; skipping delivery processing.")
        return 0

    deliveries = get_due_email_deliveries(db, limit=limit)
    processed = 0

    for delivery in deliveries:
        processed += 1
        _process_delivery(db, delivery)
        db.commit()
    return processed


def _fail(db: Session, delivery: NotificationDelivery, error: str) -> None:
    delivery.status = NotificationDeliveryStatus.FAILED
    delivery.error = error
    db.add(delivery)
    logger.warning(
        "email_delivery_failed",
        extra={"event_id": getattr(delivery.notification, "event_id", None)},
    )


def _process_delivery(db: Session, delivery: NotificationDelivery) -> None:
    now = datetime.now(timezone.utc)
    delivery.last_attempt_at = now
    delivery.attempts = (delivery.attempts or 0) + 1

    notification = delivery.notification
    if not notification:
        _fail(db, delivery, "Missing notification")
        return

    member = db.query(PartnerMember).filter(PartnerMember.principal_id == delivery.recipient_id).first()
    if member is not None and member.is_disabled:
        _fail(db, delivery, "Recipient disabled")
        return

    to_address = delivery.to_address or (member.email if member else None)
    if not to_address:
        _fail(db, delivery, "Recipient email missing")
        return

    content = build_email_content(notification)
    try:
        result = send_email(
            to_address=to_address,
            subject=content["subject"],
            text=content["text"],
        )
    except EmailSendError as exc:
        _fail(db, delivery, str(exc))
        return

    delivery.status = NotificationDeliveryStatus.SENT
    delivery.sent_at = now
    delivery.provider_message_id = result.message_id
    delivery.error = None
    db.add(delivery)


def main() -> None:
    parser = argparse.ArgumentParser(description="Process pending notification email deliveries.")
    parser.add_argument("--once", action="store_true", help="Run once and exit.")
    parser.add_argument("--interval", type=int, default=30, help="Polling interval in seconds.")
    parser.add_argument("--limit", type=int, default=50, help="Max deliveries per batch.")
    args = parser.parse_args()

    configure_logging(level=settings.log_level)

    while True:
        with SessionLocal() as db:
            processed = process_deliveries(db, limit=args.limit)
        if args.once:
            break
        if processed == 0:
            time.sleep(args.interval)


if __name__ == "__main__":
    main()
