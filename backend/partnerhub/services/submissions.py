"""Deliverable -> submission state machine.

Submissions are append-only history. The latest row of a deliverable (by
``created_at``, then the lexicographically larger ``id``) is authoritative;
``Deliverable.display_status`` is only a display cache rebuilt from it.

Every accepted transition persists the row, refreshes the display cache and
runs the fan-out inside their own savepoints, writes an activity row,
commits, and then publishes a live-update signal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from partnerhub.core import rbac
from partnerhub.core.errors import Forbidden, InvalidTransitionPayload, NotFound
from partnerhub.core.identity import ResolvedIdentity
from partnerhub.core.observability import submission_transitions_total
from partnerhub.models.deliverable import Deliverable, Submission
from partnerhub.models.enums import AppRole, NotificationType, SubmissionStatus
from partnerhub.services.activity import log_activity
from partnerhub.services.events import DomainEvent
from partnerhub.services.notifications import dispatch_event
from partnerhub.services.realtime import publish_change
from partnerhub.services.storage import resolve_partner_ref

logger = logging.getLogger("submissions")

_ACTIVITY_TYPES = {
    SubmissionStatus.PENDING_REVIEW: "submission_created",
    SubmissionStatus.APPROVED: "submission_approved",
    SubmissionStatus.REJECTED: "submission_rejected",
    SubmissionStatus.CHANGES_REQUESTED: "submission_changes_requested",
    SubmissionStatus.LOCKED_FOR_PRINTING: "submission_locked",
}

_NOTIFICATION_TYPES = {
    SubmissionStatus.PENDING_REVIEW: NotificationType.SUBMISSION_RECEIVED,
    SubmissionStatus.APPROVED: NotificationType.SUBMISSION_APPROVED,
    SubmissionStatus.REJECTED: NotificationType.SUBMISSION_REJECTED,
    SubmissionStatus.CHANGES_REQUESTED: NotificationType.SUBMISSION_CHANGES_REQUESTED,
    SubmissionStatus.LOCKED_FOR_PRINTING: NotificationType.SUBMISSION_LOCKED,
}

_TITLES = {
    SubmissionStatus.PENDING_REVIEW: "New submission",
    SubmissionStatus.APPROVED: "Submission approved",
    SubmissionStatus.REJECTED: "Submission rejected",
    SubmissionStatus.CHANGES_REQUESTED: "Changes requested",
    SubmissionStatus.LOCKED_FOR_PRINTING: "Submission locked for printing",
}


@dataclass
class SubmissionPayload:
    """Side data accompanying a transition."""

    file_ref: Optional[str] = None
    link_ref: Optional[str] = None
    file_name: Optional[str] = None
    notes: Optional[str] = None
    reason: Optional[str] = None
    review_notes: Optional[str] = None


@dataclass(frozen=True)
class SubmissionFilters:
    partner_id: Optional[str] = None
    deliverable_id: Optional[str] = None
    status: Optional[SubmissionStatus] = None
    latest_only: bool = False
    limit: int = 100


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = value.strip()
    return text or None


def latest_submission(db: Session, deliverable_id: str) -> Optional[Submission]:
    return (
        db.query(Submission)
        .filter(Submission.deliverable_id == deliverable_id)
        .order_by(Submission.created_at.desc(), Submission.id.desc())
        .first()
    )


def refresh_display_status(db: Session, deliverable: Deliverable) -> Optional[SubmissionStatus]:
    latest = latest_submission(db, deliverable.id)
    deliverable.display_status = latest.status if latest else None
    db.add(deliverable)
    db.flush()
    return deliverable.display_status


def _refresh_display_status_safely(db: Session, deliverable: Deliverable) -> None:
    try:
        with db.begin_nested():
            refresh_display_status(db, deliverable)
    except Exception:
        logger.exception(
            "display_status_refresh_failed",
            extra={"partner_id": deliverable.partner_id},
        )


def _get_deliverable(db: Session, deliverable_id: str) -> Deliverable:
    deliverable = db.get(Deliverable, deliverable_id)
    if not deliverable:
        raise NotFound("Deliverable not found", deliverable_id=deliverable_id)
    return deliverable


def _authorize(
    db: Session,
    identity: ResolvedIdentity,
    *,
    partner_id: str,
    current: Optional[SubmissionStatus],
    target: SubmissionStatus,
) -> None:
    """All checks, in order, before any write."""
    if identity.is_disabled:
        raise Forbidden("account_disabled")
    if identity.role == AppRole.UNKNOWN:
        raise Forbidden("Role could not be resolved")
    scope = rbac.visible_partner_ids(db, identity)
    if not rbac.can_view_partner(scope, partner_id):
        raise Forbidden("Partner is outside your access scope", partner_id=partner_id)
    if not rbac.role_may_target(identity.role, target):
        raise Forbidden(f"Role {identity.role.value} may not move a submission to {target.value}")

    allowed_roles = rbac.edge_roles(current, target)
    current_label = current.value if current else "none"
    if allowed_roles is None:
        raise InvalidTransitionPayload(
            f"Illegal transition {current_label} -> {target.value}",
            from_status=current_label,
            to_status=target.value,
        )
    if identity.role not in allowed_roles:
        raise Forbidden(f"Transition {current_label} -> {target.value} requires superadmin")


def _require_side_data(target: SubmissionStatus, payload: SubmissionPayload) -> None:
    if target == SubmissionStatus.PENDING_REVIEW:
        if not (_clean(payload.file_ref) or _clean(payload.link_ref)):
            raise InvalidTransitionPayload("file_ref or link_ref is required", field="file_ref")
    elif target in (SubmissionStatus.REJECTED, SubmissionStatus.CHANGES_REQUESTED):
        if not _clean(payload.reason):
            raise InvalidTransitionPayload(f"A reason is required to mark {target.value}", field="reason")


def _check_file_ref(deliverable: Deliverable, file_ref: Optional[str]) -> None:
    """Blobs may only be attached to a deliverable of the partner that owns them."""
    if file_ref is not None:
        resolve_partner_ref(file_ref, deliverable.partner_id)


def _build_event(
    identity: ResolvedIdentity,
    deliverable: Deliverable,
    submission: Submission,
    *,
    from_status: Optional[SubmissionStatus],
) -> DomainEvent:
    status = submission.status
    if status == SubmissionStatus.PENDING_REVIEW:
        message = f"A new submission was uploaded for {deliverable.name}."
    elif status == SubmissionStatus.REJECTED:
        message = f"{deliverable.name} was rejected: {submission.rejection_reason}"
    elif status == SubmissionStatus.CHANGES_REQUESTED:
        message = f"Changes were requested for {deliverable.name}: {submission.review_notes}"
    else:
        message = f"{deliverable.name} is now {status.value.replace('_', ' ')}."
    return DomainEvent(
        type=_NOTIFICATION_TYPES[status],
        actor_id=identity.principal_id,
        actor_role=identity.role,
        partner_id=submission.partner_id,
        deliverable_id=deliverable.id,
        submission_id=submission.id,
        title=_TITLES[status],
        message=message,
        from_status=from_status.value if from_status else None,
        to_status=status.value,
        metadata={"status": status.value},
    )


def _after_transition(
    db: Session,
    identity: ResolvedIdentity,
    deliverable: Deliverable,
    submission: Submission,
    *,
    from_status: Optional[SubmissionStatus],
) -> None:
    _refresh_display_status_safely(db, deliverable)
    event = _build_event(identity, deliverable, submission, from_status=from_status)
    dispatch_event(db, event)
    log_activity(
        db,
        actor_id=identity.principal_id,
        activity_type=_ACTIVITY_TYPES[submission.status],
        partner_id=submission.partner_id,
        message=deliverable.name,
        payload={
            "submission_id": submission.id,
            "deliverable_id": deliverable.id,
            "from_status": from_status.value if from_status else None,
            "to_status": submission.status.value,
            "event_id": event.event_id,
        },
    )
    db.commit()
    db.refresh(submission)
    submission_transitions_total.labels(to_status=submission.status.value).inc()
    logger.info(
        "submission_transition",
        extra={
            "submission_id": submission.id,
            "partner_id": submission.partner_id,
            "event_id": event.event_id,
        },
    )
    publish_change(submission.partner_id, entity="submission", deliverable_id=deliverable.id)


def create_submission(
    db: Session,
    identity: ResolvedIdentity,
    deliverable_id: str,
    payload: SubmissionPayload,
) -> Submission:
    """First upload or resubmission for a deliverable; always a new row."""
    deliverable = _get_deliverable(db, deliverable_id)
    latest = latest_submission(db, deliverable.id)
    current = latest.status if latest else None
    target = SubmissionStatus.PENDING_REVIEW

    _authorize(db, identity, partner_id=deliverable.partner_id, current=current, target=target)
    _require_side_data(target, payload)
    _check_file_ref(deliverable, _clean(payload.file_ref))

    submission = Submission(
        deliverable_id=deliverable.id,
        partner_id=deliverable.partner_id,
        file_ref=_clean(payload.file_ref),
        link_ref=_clean(payload.link_ref),
        file_name=_clean(payload.file_name),
        notes=_clean(payload.notes),
        status=target,
        submitted_by=identity.principal_id,
    )
    db.add(submission)
    db.flush()

    _after_transition(db, identity, deliverable, submission, from_status=current)
    return submission


def transition_submission(
    db: Session,
    identity: ResolvedIdentity,
    submission_id: str,
    target_status: SubmissionStatus,
    payload: Optional[SubmissionPayload] = None,
) -> Submission:
    """Apply a review decision, or resubmit when the target is pending_review."""
    payload = payload or SubmissionPayload()
    submission = db.get(Submission, submission_id)
    if not submission:
        raise NotFound("Submission not found", submission_id=submission_id)

    if target_status == SubmissionStatus.PENDING_REVIEW:
        # Resubmission never edits history; it appends a row to the deliverable.
        return create_submission(db, identity, submission.deliverable_id, payload)

    deliverable = _get_deliverable(db, submission.deliverable_id)
    current = submission.status
    _authorize(db, identity, partner_id=submission.partner_id, current=current, target=target_status)

    latest = latest_submission(db, deliverable.id)
    if latest is None or latest.id != submission.id:
        raise InvalidTransitionPayload(
            "Only the latest submission of a deliverable can be transitioned",
            latest_submission_id=latest.id if latest else None,
        )
    _require_side_data(target_status, payload)

    now = datetime.now(timezone.utc)
    submission.status = target_status
    submission.reviewed_by = identity.principal_id
    submission.reviewed_at = now
    if target_status == SubmissionStatus.REJECTED:
        submission.rejection_reason = _clean(payload.reason)
        if _clean(payload.review_notes):
            submission.review_notes = _clean(payload.review_notes)
    elif target_status == SubmissionStatus.CHANGES_REQUESTED:
        submission.review_notes = _clean(payload.reason)
    elif _clean(payload.review_notes):
        submission.review_notes = _clean(payload.review_notes)
    db.add(submission)
    db.flush()

    _after_transition(db, identity, deliverable, submission, from_status=current)
    return submission


def get_visible_submission(db: Session, identity: ResolvedIdentity, submission_id: str) -> Submission:
    submission = db.get(Submission, submission_id)
    if not submission:
        raise NotFound("Submission not found", submission_id=submission_id)
    rbac.ensure_partner_access(db, identity, submission.partner_id)
    return submission


def list_visible_submissions(
    db: Session,
    identity: ResolvedIdentity,
    filters: Optional[SubmissionFilters] = None,
) -> List[Submission]:
    filters = filters or SubmissionFilters()
    scope = rbac.visible_partner_ids(db, identity)
    query = rbac.apply_partner_scope(db.query(Submission), Submission.partner_id, scope)

    if filters.partner_id:
        query = query.filter(Submission.partner_id == filters.partner_id)
    if filters.deliverable_id:
        query = query.filter(Submission.deliverable_id == filters.deliverable_id)

    query = query.order_by(Submission.created_at.desc(), Submission.id.desc())
    if filters.latest_only:
        latest: List[Submission] = []
        seen: set[str] = set()
        for submission in query.all():
            if submission.deliverable_id in seen:
                continue
            seen.add(submission.deliverable_id)
            latest.append(submission)
        if filters.status:
            latest = [submission for submission in latest if submission.status == filters.status]
        return latest[: filters.limit]

    if filters.status:
        query = query.filter(Submission.status == filters.status)
    return query.limit(filters.limit).all()
