from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from partnerhub.core.settings import settings
from partnerhub.models.enums import (
    NotificationChannel,
    NotificationDeliveryStatus,
    NotificationType,
)
from partnerhub.models.notification import Notification
from partnerhub.models.notification_delivery import NotificationDelivery

EMAIL_TYPES = {
    NotificationType.SUBMISSION_RECEIVED,
    NotificationType.SUBMISSION_APPROVED,
    NotificationType.SUBMISSION_REJECTED,
    NotificationType.SUBMISSION_CHANGES_REQUESTED,
    NotificationType.MESSAGE_RECEIVED,
    NotificationType.NOMINATION_RECEIVED,
    NotificationType.NOMINATION_REVIEWED,
}


def enqueue_notification_deliveries(
    db: Session,
    *,
    notification: Notification,
    email: Optional[str],
) -> None:
    now = datetime.now(timezone.utc)
    db.add(
        NotificationDelivery(
            notification_id=notification.id,
            recipient_id=notification.recipient_id,
            channel=NotificationChannel.IN_APP,
            status=NotificationDeliveryStatus.SENT,
            sent_at=now,
        )
    )

    if notification.type not in EMAIL_TYPES or not email:
        return

    db.add(
        NotificationDelivery(
            notification_id=notification.id,
            recipient_id=notification.recipient_id,
            channel=NotificationChannel.EMAIL,
            status=NotificationDeliveryStatus.PENDING,
            to_address=email,
        )
    )


def get_due_email_deliveries(
    db: Session,
    *,
    limit: int = 50,
) -> list[NotificationDelivery]:
    retry_cutoff = datetime.now(timezone.utc) - timedelta(minutes=settings.email_retry_minutes)
    query = (
        db.query(NotificationDelivery)
        .filter(
            NotificationDelivery.channel == NotificationChannel.EMAIL,
            NotificationDelivery.attempts < settings.email_max_attempts,
            NotificationDelivery.status.in_(
                [NotificationDeliveryStatus.PENDING, NotificationDeliveryStatus.FAILED]
            ),
            (NotificationDelivery.last_attempt_at.is_(None)) | (NotificationDelivery.last_attempt_at <= retry_cutoff),
        )
        .order_by(NotificationDelivery.created_at.asc())
        .limit(limit)
        .with_for_update(skip_locked=True)
    )
    return query.all()


def build_email_content(notification: Notification) -> dict[str, str]:
    """Plain subject and body for a notification email."""
    payload = notification.metadata_json or {}
    lines = [notification.message]
    partner_id = payload.get("partner_id")
    if partner_id:
        link = f"{settings.app_base_url.rstrip('/')}/partners/{partner_id}"
        deliverable_id = payload.get("deliverable_id")
        nomination_id = payload.get("nomination_id")
        if deliverable_id:
            link = f"{link}/deliverables/{deliverable_id}"
        elif nomination_id:
            link = f"{link}/nominations/{nomination_id}"
        lines.extend(["", f"Open in the portal: {link}"])
    return {"subject": notification.title, "text": "\n".join(lines)}
