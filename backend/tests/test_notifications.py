"""Tests for notification fan-out, read tracking and the email worker."""
from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

from partnerhub.core.errors import Forbidden
from partnerhub.core.settings import settings
from partnerhub.models.enums import (
    AppRole,
    NotificationChannel,
    NotificationDeliveryStatus,
    NotificationType,
)
from partnerhub.models.notification import Notification
from partnerhub.models.notification_delivery import NotificationDelivery
from partnerhub.models.partner import AdminPartnerAssignment, PartnerMember
from partnerhub.scripts import notification_worker
from partnerhub.services.email import EmailSendError, EmailSendResult
from partnerhub.services.events import DomainEvent
from partnerhub.services.notifications import (
    dispatch_event,
    mark_all_notifications_read,
    mark_notifications_read,
    on_domain_event,
    recipients_for_event,
    unread_notification_count,
)


def _partner_event(**overrides) -> DomainEvent:
    values = dict(
        type=NotificationType.SUBMISSION_RECEIVED,
        actor_id="p1-user",
        actor_role=AppRole.PARTNER,
        partner_id="partner-1",
        deliverable_id="deliv-1",
        title="New submission",
        message="A new submission was uploaded for Booth artwork.",
    )
    values.update(overrides)
    return DomainEvent(**values)


def _admin_event(**overrides) -> DomainEvent:
    values = dict(
        type=NotificationType.SUBMISSION_APPROVED,
        actor_id="admin-1",
        actor_role=AppRole.ADMIN,
        partner_id="partner-1",
        deliverable_id="deliv-1",
        title="Submission approved",
        message="Booth artwork is now approved.",
    )
    values.update(overrides)
    return DomainEvent(**values)


def _recipient_ids(db: Session, event: DomainEvent) -> list[str]:
    return sorted(r.principal_id for r in recipients_for_event(db, event))


def test_partner_event_goes_to_assigned_admins_and_superadmins(db, world):
    assert _recipient_ids(db, _partner_event()) == ["admin-1", "super-1"]


def test_allowlisted_superadmin_is_a_recipient(monkeypatch, db, world):
    monkeypatch.setattr(settings, "superadmin_ids", ["root-from-env"])
    assert _recipient_ids(db, _partner_event()) == ["admin-1", "root-from-env", "super-1"]


def test_superadmin_gets_one_record_even_when_assigned(db, world):
    db.add(AdminPartnerAssignment(admin_id="super-1", partner_id="partner-1"))
    db.commit()

    created = on_domain_event(db, _partner_event())

    assert sorted(n.recipient_id for n in created) == ["admin-1", "super-1"]
    super_note = next(n for n in created if n.recipient_id == "super-1")
    assert super_note.recipient_role == "superadmin"


def test_disabled_admin_is_skipped(db, world):
    member = db.query(PartnerMember).filter(PartnerMember.principal_id == "admin-1").one()
    member.is_disabled = True
    db.commit()

    assert _recipient_ids(db, _partner_event()) == ["super-1"]


def test_admin_event_goes_to_partner_members_only(db, world):
    db.add(PartnerMember(principal_id="p1-second", role="partner", partner_id="partner-1"))
    db.add(PartnerMember(principal_id="p1-gone", role="partner", partner_id="partner-1", is_disabled=True))
    db.commit()

    assert _recipient_ids(db, _admin_event()) == ["p1-second", "p1-user"]


def test_actor_is_never_a_recipient(db, world):
    event = _partner_event(actor_id="admin-1")
    assert "admin-1" not in _recipient_ids(db, event)

    staff_event = _admin_event(actor_id="p1-user", actor_role=AppRole.SUPERADMIN)
    assert _recipient_ids(db, staff_event) == []


def test_replaying_an_event_is_idempotent(db, world):
    event = _partner_event()

    first = on_domain_event(db, event)
    db.commit()
    second = on_domain_event(db, event)
    db.commit()

    assert len(first) == 2
    assert second == []
    for recipient_id in ("admin-1", "super-1"):
        count = (
            db.query(Notification)
            .filter(Notification.event_id == event.event_id, Notification.recipient_id == recipient_id)
            .count()
        )
        assert count == 1


def test_distinct_events_are_not_coalesced(db, world):
    on_domain_event(db, _admin_event())
    on_domain_event(db, _admin_event())
    db.commit()

    assert db.query(Notification).filter(Notification.recipient_id == "p1-user").count() == 2


def test_email_delivery_queued_when_recipient_has_email(db, world):
    db.add(PartnerMember(principal_id="p1-no-email", role="partner", partner_id="partner-1"))
    db.commit()

    on_domain_event(db, _admin_event())
    db.commit()

    email_rows = (
        db.query(NotificationDelivery)
        .filter(NotificationDelivery.channel == NotificationChannel.EMAIL)
        .all()
    )
    assert [(row.recipient_id, row.to_address) for row in email_rows] == [("p1-user", "owner@acme.test")]
    assert email_rows[0].status == NotificationDeliveryStatus.PENDING
    in_app = db.query(NotificationDelivery).filter(NotificationDelivery.channel == NotificationChannel.IN_APP).count()
    assert in_app == 2


def test_locked_events_do_not_queue_email(db, world):
    on_domain_event(db, _admin_event(type=NotificationType.SUBMISSION_LOCKED))
    db.commit()

    email_count = (
        db.query(NotificationDelivery)
        .filter(NotificationDelivery.channel == NotificationChannel.EMAIL)
        .count()
    )
    assert email_count == 0


def test_dispatch_event_logs_and_swallows_failures(monkeypatch, db, world):
    from partnerhub.services import notifications as notification_module

    def boom(db, event):
        raise RuntimeError("store hiccup")

    monkeypatch.setattr(notification_module, "on_domain_event", boom)

    assert dispatch_event(db, _partner_event()) == []


def test_mark_read_only_touches_own_notifications(db, world, identities):
    created = on_domain_event(db, _partner_event())
    db.commit()
    mine = next(n for n in created if n.recipient_id == "admin-1")
    theirs = next(n for n in created if n.recipient_id == "super-1")

    with pytest.raises(Forbidden):
        mark_notifications_read(db, identities.a1, [mine.id, theirs.id])
    db.expire_all()
    assert db.get(Notification, mine.id).is_read is False

    assert mark_notifications_read(db, identities.a1, [mine.id, "does-not-exist"]) == 1
    db.expire_all()
    assert db.get(Notification, mine.id).is_read is True
    assert db.get(Notification, mine.id).read_at is not None
    assert db.get(Notification, theirs.id).is_read is False
    assert unread_notification_count(db, identities.a1) == 0
    assert unread_notification_count(db, identities.superadmin) == 1


def test_mark_all_read(db, world, identities):
    on_domain_event(db, _admin_event())
    on_domain_event(db, _admin_event())
    db.commit()

    assert unread_notification_count(db, identities.p1) == 2
    assert mark_all_notifications_read(db, identities.p1) == 2
    assert unread_notification_count(db, identities.p1) == 0


@pytest.fixture()
def email_on(monkeypatch):
    monkeypatch.setattr(settings, "email_provider", "resend")
    monkeypatch.setattr(settings, "email_from", "portal@partnerhub.test")
    monkeypatch.setattr(settings, "email_api_key", "re_test")


def test_worker_sends_pending_email(monkeypatch, db, world, email_on):
    sent = []

    def fake_send(**kwargs):
        sent.append(kwargs)
        return EmailSendResult(provider="resend", message_id="msg-1")

    monkeypatch.setattr(notification_worker, "send_email", fake_send)
    on_domain_event(db, _admin_event())
    db.commit()

    assert notification_worker.process_deliveries(db) == 1

    delivery = db.query(NotificationDelivery).filter(NotificationDelivery.channel == NotificationChannel.EMAIL).one()
    assert delivery.status == NotificationDeliveryStatus.SENT
    assert delivery.provider_message_id == "msg-1"
    assert delivery.attempts == 1
    assert sent[0]["to_address"] == "owner@acme.test"
    assert sent[0]["subject"] == "Submission approved"
    assert "/partners/partner-1/deliverables/deliv-1" in sent[0]["text"]


def test_worker_records_failures(monkeypatch, db, world, email_on):
    def failing_send(**kwargs):
        raise EmailSendError("Resend error: 500")

    monkeypatch.setattr(notification_worker, "send_email", failing_send)
    on_domain_event(db, _admin_event())
    db.commit()

    notification_worker.process_deliveries(db)

    delivery = db.query(NotificationDelivery).filter(NotificationDelivery.channel == NotificationChannel.EMAIL).one()
    assert delivery.status == NotificationDeliveryStatus.FAILED
    assert delivery.error == "Resend error: 500"
    assert delivery.attempts == 1
    # Retry window has not elapsed yet.
    assert notification_worker.process_deliveries(db) == 0


def test_worker_skips_when_provider_disabled(db, world):
    on_domain_event(db, _admin_event())
    db.commit()

    assert notification_worker.process_deliveries(db) == 0
