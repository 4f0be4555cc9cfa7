"""HTTP-level tests: auth, error mapping and the main portal flows."""
from __future__ import annotations

import io

import pytest

from partnerhub.core.errors import InvalidTransitionPayload
from partnerhub.models.notification import Notification
from partnerhub.models.partner import AdminPartnerAssignment, PartnerMember
from partnerhub.services.storage import save_upload


def _submit(client, headers, deliverable_id="deliv-1", **payload):
    body = {"file_ref": "partner-1/proof.pdf", "file_name": "proof.pdf"}
    body.update(payload)
    return client.post(f"/api/deliverables/{deliverable_id}/submissions", json=body, headers=headers)


def test_me_for_partner(client, world, headers_for):
    resp = client.get("/api/auth/me", headers=headers_for("p1-user", email="owner@acme.test"))

    assert resp.status_code == 200
    body = resp.json()
    assert body["role"] == "partner"
    assert body["partner_id"] == "partner-1"
    assert body["visible_partner_ids"] == ["partner-1"]
    assert body["source"] == "membership"


def test_me_for_superadmin_reports_all(client, world, headers_for):
    resp = client.get("/api/auth/me", headers=headers_for("super-1"))

    assert resp.status_code == 200
    assert resp.json()["role"] == "superadmin"
    assert resp.json()["visible_partner_ids"] == "ALL"


def test_unknown_principal_defaults_to_partner_without_scope(client, world, headers_for):
    resp = client.get("/api/auth/me", headers=headers_for("stranger"))

    assert resp.status_code == 200
    assert resp.json()["role"] == "partner"
    assert resp.json()["visible_partner_ids"] == []


def test_missing_or_bad_token_is_unauthorized(client, world):
    resp = client.get("/api/auth/me")
    assert resp.status_code == 401
    assert resp.json()["detail"]["code"] == "UNAUTHORIZED"

    resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


def test_disabled_member_is_forbidden(client, db, world, headers_for):
    member = db.query(PartnerMember).filter(PartnerMember.principal_id == "p2-user").one()
    member.is_disabled = True
    db.commit()

    resp = client.get("/api/partners", headers=headers_for("p2-user"))

    assert resp.status_code == 403
    assert resp.json()["detail"]["message"] == "account_disabled"


def test_partner_list_is_scoped(client, world, headers_for):
    resp = client.get("/api/partners", headers=headers_for("admin-1"))
    assert [p["id"] for p in resp.json()] == ["partner-1"]

    resp = client.get("/api/partners/partner-2", headers=headers_for("admin-1"))
    assert resp.status_code == 403

    resp = client.get("/api/partners", headers=headers_for("super-1"))
    assert [p["name"] for p in resp.json()] == ["Acme Print", "Globex"]


def test_submission_review_flow_over_http(client, world, headers_for):
    partner = headers_for("p1-user")
    admin = headers_for("admin-1")

    created = _submit(client, partner, notes="v1")
    assert created.status_code == 201
    submission_id = created.json()["id"]
    assert created.json()["status"] == "pending_review"

    missing_reason = client.post(
        f"/api/submissions/{submission_id}/transition",
        json={"target_status": "rejected"},
        headers=admin,
    )
    assert missing_reason.status_code == 422
    assert missing_reason.json()["detail"]["code"] == "INVALID_TRANSITION"
    assert missing_reason.json()["detail"]["field"] == "reason"

    outsider = client.post(
        f"/api/submissions/{submission_id}/transition",
        json={"target_status": "approved"},
        headers=headers_for("admin-2"),
    )
    assert outsider.status_code == 403

    rejected = client.post(
        f"/api/submissions/{submission_id}/transition",
        json={"target_status": "rejected", "reason": "Low resolution"},
        headers=admin,
    )
    assert rejected.status_code == 200
    assert rejected.json()["rejection_reason"] == "Low resolution"
    assert rejected.json()["reviewed_by"] == "admin-1"

    resubmitted = client.post(
        f"/api/submissions/{submission_id}/transition",
        json={"target_status": "pending_review", "file_ref": "partner-1/proof-v2.pdf"},
        headers=partner,
    )
    assert resubmitted.status_code == 200
    assert resubmitted.json()["id"] != submission_id

    deliverable = client.get("/api/deliverables/deliv-1", headers=partner).json()
    assert deliverable["display_status"] == "pending_review"

    history = client.get("/api/submissions", params={"deliverable_id": "deliv-1"}, headers=partner).json()
    assert len(history) == 2

    latest = client.get(
        "/api/submissions",
        params={"deliverable_id": "deliv-1", "latest_only": "true"},
        headers=partner,
    ).json()
    assert [row["id"] for row in latest] == [resubmitted.json()["id"]]


def test_other_partner_cannot_read_submission(client, world, headers_for):
    submission_id = _submit(client, headers_for("p1-user")).json()["id"]

    resp = client.get(f"/api/submissions/{submission_id}", headers=headers_for("p2-user"))

    assert resp.status_code == 403


def test_notifications_endpoints(client, world, headers_for):
    _submit(client, headers_for("p1-user"))
    admin = headers_for("admin-1")

    listed = client.get("/api/notifications", headers=admin).json()
    assert [n["type"] for n in listed] == ["SUBMISSION_RECEIVED"]
    assert client.get("/api/notifications/unread-count", headers=admin).json() == {"count": 1}

    marked = client.post("/api/notifications/read", json={"notification_ids": [listed[0]["id"]]}, headers=admin)
    assert marked.json() == {"count": 1}
    assert client.get("/api/notifications/unread-count", headers=admin).json() == {"count": 0}

    foreign = client.post(
        "/api/notifications/read",
        json={"notification_ids": [listed[0]["id"]]},
        headers=headers_for("super-1"),
    )
    assert foreign.status_code == 403

    assert client.post("/api/notifications/read-all", headers=headers_for("super-1")).json() == {"count": 1}


def test_messages_endpoints(client, db, world, headers_for):
    partner = headers_for("p1-user")
    admin = headers_for("admin-1")

    sent = client.post(
        "/api/partners/partner-1/messages",
        json={"body": "Is the bleed 3mm?", "deliverable_id": "deliv-1"},
        headers=partner,
    )
    assert sent.status_code == 201
    assert sent.json()["sender_role"] == "partner"

    blank = client.post("/api/partners/partner-1/messages", json={"body": "   "}, headers=partner)
    assert blank.status_code == 422

    assert client.get("/api/partners/partner-1/messages/unread-count", headers=admin).json() == {"count": 1}
    assert client.post("/api/partners/partner-1/messages/read", headers=admin).json() == {"count": 1}
    thread = client.get("/api/partners/partner-1/messages", params={"deliverable_id": "deliv-1"}, headers=admin)
    assert [m["body"] for m in thread.json()] == ["Is the bleed 3mm?"]
    assert db.query(Notification).filter(Notification.recipient_id == "admin-1").count() == 1


def test_disabling_a_member_takes_effect_on_next_request(client, world, headers_for):
    partner = headers_for("p1-user")
    assert client.get("/api/auth/me", headers=partner).status_code == 200

    resp = client.patch("/api/admin/members/p1-user", json={"is_disabled": True}, headers=headers_for("super-1"))
    assert resp.status_code == 200
    assert resp.json()["is_disabled"] is True

    blocked = client.get("/api/auth/me", headers=partner)
    assert blocked.status_code == 403
    assert blocked.json()["detail"]["message"] == "account_disabled"


def test_only_superadmin_manages_members(client, world, headers_for):
    resp = client.patch("/api/admin/members/p1-user", json={"is_disabled": True}, headers=headers_for("admin-1"))

    assert resp.status_code == 403


def test_replacing_admin_assignments(client, db, world, headers_for):
    superadmin = headers_for("super-1")

    resp = client.put(
        "/api/admin/admins/admin-2/partners",
        json={"partner_ids": ["partner-1", "partner-2"]},
        headers=superadmin,
    )
    assert resp.status_code == 200
    assert resp.json()["partner_ids"] == ["partner-1", "partner-2"]

    me = client.get("/api/auth/me", headers=headers_for("admin-2")).json()
    assert me["visible_partner_ids"] == ["partner-1", "partner-2"]

    client.put("/api/admin/admins/admin-2/partners", json={"partner_ids": []}, headers=superadmin)
    assert db.query(AdminPartnerAssignment).filter(AdminPartnerAssignment.admin_id == "admin-2").count() == 0
    assert client.get("/api/partners", headers=headers_for("admin-2")).json() == []

    unknown = client.put("/api/admin/admins/admin-2/partners", json={"partner_ids": ["nope"]}, headers=superadmin)
    assert unknown.status_code == 404


def test_delete_blocked_by_pending_submission(client, world, headers_for):
    submission_id = _submit(client, headers_for("p1-user")).json()["id"]

    resp = client.delete("/api/deliverables/deliv-1", headers=headers_for("admin-1"))

    assert resp.status_code == 409
    assert resp.json()["detail"]["blocking_id"] == submission_id
    assert client.delete("/api/deliverables/deliv-2", headers=headers_for("admin-2")).status_code == 204


def test_create_deliverable_requires_staff(client, world, headers_for):
    payload = {"partner_id": "partner-1", "name": "Banner", "type": "print"}

    assert client.post("/api/deliverables", json=payload, headers=headers_for("p1-user")).status_code == 403
    created = client.post("/api/deliverables", json=payload, headers=headers_for("admin-1"))
    assert created.status_code == 201
    assert created.json()["partner_id"] == "partner-1"


def test_upload_returns_file_ref(client, world, headers_for, tmp_path):
    resp = client.post(
        "/api/uploads",
        files={"file": ("proof.pdf", b"%PDF-1.4 test", "application/pdf")},
        data={"partner_id": "partner-1"},
        headers=headers_for("p1-user"),
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["file_ref"].startswith("partner-1/")
    assert body["file_ref"].endswith(".pdf")
    assert body["size"] == len(b"%PDF-1.4 test")
    assert (tmp_path / "uploads" / body["file_ref"]).exists()


def test_upload_rejects_foreign_partner_and_empty_file(client, world, headers_for):
    foreign = client.post(
        "/api/uploads",
        files={"file": ("proof.pdf", b"data", "application/pdf")},
        data={"partner_id": "partner-2"},
        headers=headers_for("p1-user"),
    )
    assert foreign.status_code == 403

    empty = client.post(
        "/api/uploads",
        files={"file": ("empty.pdf", b"", "application/pdf")},
        headers=headers_for("p1-user"),
    )
    assert empty.status_code == 422


def test_healthz_and_version(client, world):
    health = client.get("/healthz")
    assert health.status_code == 200
    assert health.json()["status"] == "ok"
    assert health.json()["email_queue_pending"] == 0

    version = client.get("/version").json()
    assert version["app"] == "partnerhub-api"


def test_submission_file_download_is_scoped(client, world, headers_for):
    partner = headers_for("p1-user")
    uploaded = client.post(
        "/api/uploads",
        files={"file": ("proof.pdf", b"%PDF-1.4 proof", "application/pdf")},
        headers=partner,
    ).json()
    submission_id = _submit(client, partner, file_ref=uploaded["file_ref"]).json()["id"]

    resp = client.get(f"/api/submissions/{submission_id}/file", headers=headers_for("admin-1"))
    assert resp.status_code == 200
    assert resp.content == b"%PDF-1.4 proof"

    assert client.get(f"/api/submissions/{submission_id}/file", headers=headers_for("admin-2")).status_code == 403


def test_cannot_attach_another_partners_upload(client, world, headers_for):
    uploaded = client.post(
        "/api/uploads",
        files={"file": ("secret.pdf", b"%PDF-1.4 secret", "application/pdf")},
        headers=headers_for("p2-user"),
    ).json()
    assert uploaded["file_ref"].startswith("partner-2/")

    resp = _submit(client, headers_for("p1-user"), file_ref=uploaded["file_ref"])

    assert resp.status_code == 422
    assert resp.json()["detail"]["field"] == "file_ref"
    listed = client.get("/api/submissions", params={"deliverable_id": "deliv-1"}, headers=headers_for("admin-1"))
    assert listed.json() == []


def test_upload_for_unknown_partner_is_not_found(client, world, headers_for, tmp_path):
    superadmin = headers_for("super-1")
    for partner_id in ("..", "missing-partner"):
        resp = client.post(
            "/api/uploads",
            files={"file": ("proof.pdf", b"data", "application/pdf")},
            data={"partner_id": partner_id},
            headers=superadmin,
        )
        assert resp.status_code == 404
    assert list(tmp_path.glob("*.pdf")) == []


def test_superadmin_creates_member(client, world, headers_for):
    stranger = headers_for("new-user", email="new@globex.test")
    assert client.get("/api/auth/me", headers=stranger).json()["visible_partner_ids"] == []

    resp = client.post(
        "/api/admin/members",
        json={"principal_id": "new-user", "role": "Partner", "partner_id": "partner-2", "email": "new@globex.test"},
        headers=headers_for("super-1"),
    )

    assert resp.status_code == 201
    assert resp.json()["role"] == "partner"
    assert resp.json()["partner_id"] == "partner-2"
    me = client.get("/api/auth/me", headers=stranger).json()
    assert me["source"] == "membership"
    assert me["visible_partner_ids"] == ["partner-2"]


def test_member_creation_validation(client, world, headers_for):
    superadmin = headers_for("super-1")

    def create(payload, headers=superadmin):
        return client.post("/api/admin/members", json=payload, headers=headers)

    assert create({"principal_id": "x", "role": "admin"}, headers=headers_for("admin-1")).status_code == 403
    bad_role = create({"principal_id": "x", "role": "owner"})
    assert bad_role.status_code == 422
    assert bad_role.json()["detail"]["field"] == "role"
    assert create({"principal_id": "x", "role": "partner"}).status_code == 422
    assert create({"principal_id": "x", "role": "partner", "partner_id": "nope"}).status_code == 404
    duplicate = create({"principal_id": "p1-user", "role": "partner", "partner_id": "partner-1"})
    assert duplicate.status_code == 409
    assert create({"principal_id": "admin-3", "role": "admin"}).status_code == 201


@pytest.mark.parametrize("partner_id", ["..", ".", "", "a/b"])
def test_storage_refuses_unsafe_partner_folder(partner_id):
    with pytest.raises(InvalidTransitionPayload):
        save_upload(partner_id=partner_id, filename="x.pdf", stream=io.BytesIO(b"data"))
