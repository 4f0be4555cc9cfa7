"""Tests for identity resolution: tier precedence, disabled flag and cache."""
from __future__ import annotations

import time

import pytest
from sqlalchemy.exc import OperationalError

from partnerhub.core import identity as identity_module
from partnerhub.core import rbac
from partnerhub.core.errors import IdentityUnresolvable
from partnerhub.core.identity import (
    IdentityResolver,
    MembershipSnapshot,
    build_identity,
    normalize_role_token,
)
from partnerhub.core.security import Principal
from partnerhub.core.settings import settings
from partnerhub.models.enums import AppRole
from partnerhub.models.partner import PartnerMember


def _membership(role: str = "partner", partner_id: str | None = "partner-1", disabled: bool = False) -> MembershipSnapshot:
    return MembershipSnapshot(
        principal_id="u1",
        email="member@acme.test",
        role=role,
        partner_id=partner_id,
        is_disabled=disabled,
    )


@pytest.mark.parametrize(
    "token,expected",
    [
        ("superadmin", AppRole.SUPERADMIN),
        ("SEF_ADMIN", AppRole.SUPERADMIN),
        ("Super_Admin", AppRole.SUPERADMIN),
        ("admin", AppRole.ADMIN),
        (" Partner ", AppRole.PARTNER),
        ("viewer", None),
        (None, None),
    ],
)
def test_normalize_role_token(token, expected):
    assert normalize_role_token(token) == expected


def test_allowlist_by_id_wins_over_metadata(monkeypatch):
    monkeypatch.setattr(settings, "superadmin_ids", ["u1"])
    principal = Principal(id="u1", app_metadata={"role": "partner", "partner_id": "partner-1"})

    identity = build_identity(principal, _membership())

    assert identity.role == AppRole.SUPERADMIN
    assert identity.source == "allowlist"
    assert identity.partner_id is None


def test_allowlist_email_is_case_insensitive(monkeypatch):
    monkeypatch.setattr(settings, "superadmin_emails", ["root@portal.test"])
    principal = Principal(id="u1", email="Root@Portal.TEST")

    assert build_identity(principal, None).role == AppRole.SUPERADMIN


def test_trusted_channel_beats_self_service_channel():
    principal = Principal(
        id="u1",
        app_metadata={"role": "partner", "partner_id": "partner-1"},
        user_metadata={"role": "admin"},
    )

    identity = build_identity(principal, None)

    assert identity.role == AppRole.PARTNER
    assert identity.partner_id == "partner-1"
    assert identity.source == "app_metadata"


def test_self_service_channel_used_when_trusted_absent():
    principal = Principal(id="u1", user_metadata={"role": "admin"})

    identity = build_identity(principal, _membership(role="partner"))

    assert identity.role == AppRole.ADMIN
    assert identity.source == "user_metadata"


def test_unrecognized_trusted_token_falls_through():
    principal = Principal(id="u1", app_metadata={"role": "owner"})

    identity = build_identity(principal, _membership(role="sef_admin", partner_id=None))

    assert identity.role == AppRole.SUPERADMIN
    assert identity.source == "membership"


def test_membership_non_admin_token_means_partner():
    identity = build_identity(Principal(id="u1"), _membership(role="exhibitor"))

    assert identity.role == AppRole.PARTNER
    assert identity.partner_id == "partner-1"
    assert identity.source == "membership"


def test_default_is_partner_without_scope():
    identity = build_identity(Principal(id="u1"), None)

    assert identity.role == AppRole.PARTNER
    assert identity.partner_id is None
    assert identity.is_disabled is False
    assert identity.source == "default"


def test_disabled_flag_applies_whatever_tier(monkeypatch, db, world):
    monkeypatch.setattr(settings, "superadmin_ids", ["u1"])
    disabled = _membership(disabled=True)

    for principal in (
        Principal(id="u1"),
        Principal(id="u2", app_metadata={"role": "admin"}),
        Principal(id="u3", user_metadata={"role": "partner", "partner_id": "partner-1"}),
    ):
        identity = build_identity(principal, disabled)
        assert identity.is_disabled is True
        assert rbac.visible_partner_ids(db, identity) == set()


def test_disabled_admin_in_store_has_empty_scope(db, world):
    member = db.query(PartnerMember).filter(PartnerMember.principal_id == "admin-1").one()
    member.is_disabled = True
    db.commit()

    resolver = IdentityResolver(ttl_seconds=60, lookup_timeout_seconds=2)
    identity = resolver.resolve(db, Principal(id="admin-1", app_metadata={"role": "admin"}))

    assert identity.role == AppRole.ADMIN
    assert identity.is_disabled is True
    assert rbac.visible_partner_ids(db, identity) == set()
    for partner in (world.p1, world.p2):
        assert not rbac.can_view_partner(rbac.visible_partner_ids(db, identity), partner.id)


def test_resolve_is_idempotent_and_cached(db, world):
    resolver = IdentityResolver(ttl_seconds=60, lookup_timeout_seconds=2)
    principal = Principal(id="p1-user", email="owner@acme.test")

    first = resolver.resolve(db, principal)
    second = resolver.resolve(db, principal)

    assert first == second
    assert first.role == AppRole.PARTNER
    assert first.partner_id == "partner-1"
    assert resolver.cached("p1-user") == first


def test_invalidate_picks_up_role_change(db, world):
    resolver = IdentityResolver(ttl_seconds=60, lookup_timeout_seconds=2)
    principal = Principal(id="p1-user")
    assert resolver.resolve(db, principal).role == AppRole.PARTNER

    member = db.query(PartnerMember).filter(PartnerMember.principal_id == "p1-user").one()
    member.role = "admin"
    db.commit()

    assert resolver.resolve(db, principal).role == AppRole.PARTNER
    resolver.invalidate("p1-user")
    assert resolver.resolve(db, principal).role == AppRole.ADMIN


def test_expired_entry_is_reloaded(db, world):
    resolver = IdentityResolver(ttl_seconds=0, lookup_timeout_seconds=2)
    principal = Principal(id="p1-user")
    resolver.resolve(db, principal)

    member = db.query(PartnerMember).filter(PartnerMember.principal_id == "p1-user").one()
    member.is_disabled = True
    db.commit()

    assert resolver.resolve(db, principal).is_disabled is True


def test_lookup_timeout_degrades_to_unknown(monkeypatch, db, world):
    def slow_lookup(bind, principal_id):
        time.sleep(0.5)
        return None

    monkeypatch.setattr(identity_module, "_load_membership", slow_lookup)
    resolver = IdentityResolver(ttl_seconds=60, lookup_timeout_seconds=0.05)
    principal = Principal(id="admin-1", app_metadata={"role": "admin"})

    identity = resolver.resolve(db, principal)

    assert identity.role == AppRole.UNKNOWN
    assert identity.source == "timeout"
    assert resolver.cached("admin-1") is None
    assert rbac.visible_partner_ids(db, identity) == set()


def test_lookup_timeout_does_not_grant_allowlisted_superadmin(monkeypatch, db, world):
    def slow_lookup(bind, principal_id):
        time.sleep(0.5)
        return None

    monkeypatch.setattr(settings, "superadmin_ids", ["super-1"])
    monkeypatch.setattr(identity_module, "_load_membership", slow_lookup)
    resolver = IdentityResolver(ttl_seconds=60, lookup_timeout_seconds=0.05)

    identity = resolver.resolve(db, Principal(id="super-1"))

    assert identity.role == AppRole.UNKNOWN


def test_store_error_raises_identity_unresolvable(monkeypatch, db, world):
    def broken_lookup(bind, principal_id):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(identity_module, "_load_membership", broken_lookup)
    resolver = IdentityResolver(ttl_seconds=60, lookup_timeout_seconds=2)

    with pytest.raises(IdentityUnresolvable):
        resolver.resolve(db, Principal(id="p1-user"))


def test_eviction_during_lookup_skips_stale_write(monkeypatch, db, world):
    resolver = IdentityResolver(ttl_seconds=60, lookup_timeout_seconds=2)
    real_lookup = identity_module._load_membership

    def racing_lookup(bind, principal_id):
        snapshot = real_lookup(bind, principal_id)
        resolver.invalidate(principal_id)
        return snapshot

    monkeypatch.setattr(identity_module, "_load_membership", racing_lookup)

    identity = resolver.resolve(db, Principal(id="p1-user"))

    assert identity.role == AppRole.PARTNER
    assert resolver.cached("p1-user") is None
