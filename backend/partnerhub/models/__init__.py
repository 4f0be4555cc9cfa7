"""Import all models so SQLAlchemy metadata is fully registered."""

from partnerhub.db.base import Base

from partnerhub.models.audit import ActivityLog
from partnerhub.models.deliverable import Deliverable, Submission
from partnerhub.models.enums import (
    AppRole,
    NominationStatus,
    NotificationChannel,
    NotificationDeliveryStatus,
    NotificationType,
    SenderRole,
    SubmissionStatus,
)
from partnerhub.models.message import Message
from partnerhub.models.nomination import Nomination
from partnerhub.models.notification import Notification
from partnerhub.models.notification_delivery import NotificationDelivery
from partnerhub.models.partner import AdminPartnerAssignment, Partner, PartnerMember

__all__ = [
    "Base",
    "ActivityLog",
    "AdminPartnerAssignment",
    "AppRole",
    "Deliverable",
    "Message",
    "Nomination",
    "NominationStatus",
    "Notification",
    "NotificationChannel",
    "NotificationDelivery",
    "NotificationDeliveryStatus",
    "NotificationType",
    "Partner",
    "PartnerMember",
    "SenderRole",
    "Submission",
    "SubmissionStatus",
]
