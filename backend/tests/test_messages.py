from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from partnerhub.core.errors import Forbidden, InvalidTransitionPayload, NotFound
from partnerhub.models.enums import NotificationType, SenderRole
from partnerhub.models.message import Message
from partnerhub.models.notification import Notification
from partnerhub.services.messages import (
    list_messages,
    mark_messages_read,
    send_message,
    unread_message_count,
)


def test_partner_message_notifies_assigned_admin_and_superadmins(db, identities):
    message = send_message(db, identities.p1, "partner-1", "deliv-1", "  Is the bleed 3mm?  ")

    assert message.sender_role == SenderRole.PARTNER
    assert message.body == "Is the bleed 3mm?"
    notes = db.query(Notification).filter(Notification.type == NotificationType.MESSAGE_RECEIVED).all()
    assert sorted(n.recipient_id for n in notes) == ["admin-1", "super-1"]
    assert all(n.metadata_json["message_id"] == message.id for n in notes)
    assert notes[0].title == "New message on Booth artwork"


def test_admin_message_notifies_partner_members(db, identities):
    send_message(db, identities.a1, "partner-1", None, "Please check the proof.")

    notes = db.query(Notification).all()
    assert [n.recipient_id for n in notes] == ["p1-user"]


def test_superadmin_sends_as_admin(db, identities):
    message = send_message(db, identities.superadmin, "partner-2", "deliv-2", "Logo received.")

    assert message.sender_role == SenderRole.ADMIN


def test_unread_count_and_batch_mark_read(db, identities):
    send_message(db, identities.p1, "partner-1", "deliv-1", "First question")
    send_message(db, identities.p1, "partner-1", "deliv-1", "Second question")
    send_message(db, identities.a1, "partner-1", "deliv-1", "Answer")

    assert unread_message_count(db, identities.a1, "partner-1") == 2
    assert unread_message_count(db, identities.p1, "partner-1") == 1

    assert mark_messages_read(db, identities.a1, "partner-1", "deliv-1") == 2
    assert unread_message_count(db, identities.a1, "partner-1") == 0
    # The admin's own message is untouched.
    assert unread_message_count(db, identities.p1, "partner-1") == 1
    assert mark_messages_read(db, identities.a1, "partner-1", "deliv-1") == 0


@pytest.mark.parametrize("body", ["", "   ", None])
def test_blank_body_is_rejected(db, identities, body):
    with pytest.raises(InvalidTransitionPayload):
        send_message(db, identities.p1, "partner-1", None, body)
    assert db.query(Message).count() == 0


def test_deliverable_of_another_partner_is_rejected(db, identities):
    with pytest.raises(InvalidTransitionPayload):
        send_message(db, identities.superadmin, "partner-1", "deliv-2", "Wrong thread")
    with pytest.raises(NotFound):
        send_message(db, identities.superadmin, "partner-1", "missing", "No such deliverable")
    assert db.query(Message).count() == 0


def test_out_of_scope_thread_is_forbidden(db, identities):
    with pytest.raises(Forbidden):
        send_message(db, identities.a2, "partner-1", None, "Not my partner")
    with pytest.raises(Forbidden):
        list_messages(db, identities.p2, "partner-1")
    with pytest.raises(Forbidden):
        unread_message_count(db, identities.p2, "partner-1")
    with pytest.raises(Forbidden):
        mark_messages_read(db, identities.a2, "partner-1")


def test_list_messages_is_oldest_first_and_filters_by_deliverable(db, identities):
    base = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
    db.add_all(
        [
            Message(id="m-late", partner_id="partner-1", deliverable_id="deliv-1", sender_id="admin-1",
                    sender_role=SenderRole.ADMIN, body="third", created_at=base + timedelta(minutes=2)),
            Message(id="m-early", partner_id="partner-1", deliverable_id="deliv-1", sender_id="p1-user",
                    sender_role=SenderRole.PARTNER, body="first", created_at=base),
            Message(id="m-general", partner_id="partner-1", deliverable_id=None, sender_id="p1-user",
                    sender_role=SenderRole.PARTNER, body="second", created_at=base + timedelta(minutes=1)),
        ]
    )
    db.commit()

    assert [m.body for m in list_messages(db, identities.p1, "partner-1")] == ["first", "second", "third"]
    assert [m.id for m in list_messages(db, identities.a1, "partner-1", "deliv-1")] == ["m-early", "m-late"]
