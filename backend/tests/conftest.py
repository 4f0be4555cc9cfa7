from __future__ import annotations

import os

# The engine is built at import time; point it at SQLite before anything loads.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("EMAIL_PROVIDER", "disabled")
os.environ.setdefault("JWT_SECRET", "test-secret")

from types import SimpleNamespace
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from partnerhub.core.identity import ResolvedIdentity, identity_resolver
from partnerhub.core.security import create_access_token
from partnerhub.core.settings import settings
from partnerhub.db.session import get_db
from partnerhub.main import app
from partnerhub.models import Base
from partnerhub.models.deliverable import Deliverable
from partnerhub.models.enums import AppRole
from partnerhub.models.partner import AdminPartnerAssignment, Partner, PartnerMember


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        pool_reset_on_return=None,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db(engine):
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def _reset_identity_state(monkeypatch, tmp_path):
    identity_resolver.clear()
    monkeypatch.setattr(settings, "superadmin_ids", [])
    monkeypatch.setattr(settings, "superadmin_emails", [])
    monkeypatch.setattr(settings, "uploads_dir", str(tmp_path / "uploads"))
    yield
    identity_resolver.clear()


def _member(db: Session, principal_id: str, *, role: str, partner_id: Optional[str], email: Optional[str]) -> PartnerMember:
    member = PartnerMember(
        principal_id=principal_id,
        email=email,
        full_name=principal_id,
        role=role,
        partner_id=partner_id,
    )
    db.add(member)
    return member


@pytest.fixture()
def world(db: Session):
    """Two partners, their users, one assigned admin each and a superadmin."""
    p1 = Partner(id="partner-1", name="Acme Print", tier="gold", is_active=True)
    p2 = Partner(id="partner-2", name="Globex", tier="silver", is_active=True)
    db.add_all([p1, p2])
    db.flush()

    _member(db, "p1-user", role="partner", partner_id=p1.id, email="owner@acme.test")
    _member(db, "p2-user", role="partner", partner_id=p2.id, email="owner@globex.test")
    _member(db, "admin-1", role="admin", partner_id=None, email="a1@portal.test")
    _member(db, "admin-2", role="admin", partner_id=None, email="a2@portal.test")
    _member(db, "super-1", role="sef_admin", partner_id=None, email="root@portal.test")
    db.add_all(
        [
            AdminPartnerAssignment(admin_id="admin-1", partner_id=p1.id),
            AdminPartnerAssignment(admin_id="admin-2", partner_id=p2.id),
        ]
    )

    d1 = Deliverable(id="deliv-1", partner_id=p1.id, name="Booth artwork", type="artwork")
    d2 = Deliverable(id="deliv-2", partner_id=p2.id, name="Logo pack", type="logo")
    db.add_all([d1, d2])
    db.commit()
    return SimpleNamespace(p1=p1, p2=p2, d1=d1, d2=d2)


@pytest.fixture()
def identities(world):
    return SimpleNamespace(
        p1=ResolvedIdentity(principal_id="p1-user", role=AppRole.PARTNER, partner_id="partner-1", source="membership"),
        p2=ResolvedIdentity(principal_id="p2-user", role=AppRole.PARTNER, partner_id="partner-2", source="membership"),
        a1=ResolvedIdentity(principal_id="admin-1", role=AppRole.ADMIN, source="membership"),
        a2=ResolvedIdentity(principal_id="admin-2", role=AppRole.ADMIN, source="membership"),
        superadmin=ResolvedIdentity(principal_id="super-1", role=AppRole.SUPERADMIN, source="membership"),
    )


@pytest.fixture()
def client(db: Session):
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    client_instance = TestClient(app)
    try:
        yield client_instance
    finally:
        client_instance.close()
        app.dependency_overrides.clear()


def auth_headers(principal_id: str, *, email: Optional[str] = None, role: Optional[str] = None, partner_id: Optional[str] = None) -> dict:
    claims: dict = {"sub": principal_id}
    if email:
        claims["email"] = email
    app_metadata = {}
    if role:
        app_metadata["role"] = role
    if partner_id:
        app_metadata["partner_id"] = partner_id
    if app_metadata:
        claims["app_metadata"] = app_metadata
    token = create_access_token(claims)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def headers_for():
    return auth_headers
