from __future__ import annotations

import enum


class AppRole(str, enum.Enum):
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    PARTNER = "partner"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


class SenderRole(str, enum.Enum):
    ADMIN = "admin"
    PARTNER = "partner"

    def __str__(self) -> str:
        return self.value


class SubmissionStatus(str, enum.Enum):
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    CHANGES_REQUESTED = "changes_requested"
    LOCKED_FOR_PRINTING = "locked_for_printing"

    def __str__(self) -> str:
        return self.value


class NominationStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    HIDDEN = "hidden"

    def __str__(self) -> str:
        return self.value


class NotificationType(str, enum.Enum):
    SUBMISSION_RECEIVED = "SUBMISSION_RECEIVED"
    SUBMISSION_APPROVED = "SUBMISSION_APPROVED"
    SUBMISSION_REJECTED = "SUBMISSION_REJECTED"
    SUBMISSION_CHANGES_REQUESTED = "SUBMISSION_CHANGES_REQUESTED"
    SUBMISSION_LOCKED = "SUBMISSION_LOCKED"
    MESSAGE_RECEIVED = "MESSAGE_RECEIVED"
    NOMINATION_RECEIVED = "NOMINATION_RECEIVED"
    NOMINATION_REVIEWED = "NOMINATION_REVIEWED"

    def __str__(self) -> str:
        return self.value


class NotificationChannel(str, enum.Enum):
    IN_APP = "IN_APP"
    EMAIL = "EMAIL"


class NotificationDeliveryStatus(str, enum.Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Persist member values (not names) for lowercase enums."""
    return [member.value for member in enum_cls]
