"""Identity resolution for authenticated principals.

A principal carries role hints on several channels of differing trust. The
resolver walks an ordered tuple of tier functions and takes the first hint:

1. superadmin allowlist (``SUPERADMIN_IDS`` / ``SUPERADMIN_EMAILS``)
2. trusted ``app_metadata.role``
3. self-service ``user_metadata.role``
4. the ``partner_members`` row for the principal
5. default ``partner`` with no scope

The membership row is always read (with a timeout) because ``is_disabled``
applies whatever tier produced the role. Results are cached per principal
with a TTL and a version token; ``invalidate`` bumps the version so a lookup
that started before a role mutation never writes its stale result back.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Callable, Dict, NamedTuple, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from partnerhub.core.errors import IdentityUnresolvable
from partnerhub.core.observability import identity_cache_total
from partnerhub.core.security import Principal
from partnerhub.core.settings import settings
from partnerhub.models.enums import AppRole
from partnerhub.models.partner import PartnerMember

logger = logging.getLogger("identity")

SUPERADMIN_TOKENS = frozenset({"superadmin", "sef_admin", "super_admin"})
ADMIN_TOKENS = frozenset({"admin"})
PARTNER_TOKENS = frozenset({"partner"})


def normalize_role_token(value: object) -> Optional[AppRole]:
    """Map a raw role token onto an AppRole, or None when unrecognized."""
    if value is None:
        return None
    token = str(value).strip().lower()
    if token in SUPERADMIN_TOKENS:
        return AppRole.SUPERADMIN
    if token in ADMIN_TOKENS:
        return AppRole.ADMIN
    if token in PARTNER_TOKENS:
        return AppRole.PARTNER
    return None


class RoleHint(NamedTuple):
    role: AppRole
    source: str
    partner_id: Optional[str] = None


@dataclass(frozen=True)
class MembershipSnapshot:
    """Detached copy of a membership row, safe to use across threads."""

    principal_id: str
    email: Optional[str]
    role: str
    partner_id: Optional[str]
    is_disabled: bool

    @classmethod
    def from_row(cls, row: PartnerMember) -> "MembershipSnapshot":
        return cls(
            principal_id=row.principal_id,
            email=row.email,
            role=row.role,
            partner_id=row.partner_id,
            is_disabled=bool(row.is_disabled),
        )


@dataclass(frozen=True)
class ResolvedIdentity:
    principal_id: str
    role: AppRole
    email: Optional[str] = None
    partner_id: Optional[str] = None
    is_disabled: bool = False
    source: str = "default"

    @property
    def is_superadmin(self) -> bool:
        return self.role == AppRole.SUPERADMIN

    @property
    def is_staff(self) -> bool:
        return self.role in (AppRole.SUPERADMIN, AppRole.ADMIN)

    @property
    def is_active(self) -> bool:
        return not self.is_disabled and self.role != AppRole.UNKNOWN


TierFn = Callable[[Principal, Optional[MembershipSnapshot]], Optional[RoleHint]]


def _str_or_none(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def allowlist_tier(principal: Principal, membership: Optional[MembershipSnapshot]) -> Optional[RoleHint]:
    if principal.id in settings.superadmin_ids:
        return RoleHint(AppRole.SUPERADMIN, "allowlist")
    email = (principal.email or "").strip().lower()
    if email and email in settings.superadmin_emails:
        return RoleHint(AppRole.SUPERADMIN, "allowlist")
    return None


def _metadata_tier(channel: str) -> TierFn:
    def tier(principal: Principal, membership: Optional[MembershipSnapshot]) -> Optional[RoleHint]:
        metadata = getattr(principal, channel) or {}
        role = normalize_role_token(metadata.get("role"))
        if role is None:
            return None
        return RoleHint(role, channel, _str_or_none(metadata.get("partner_id")))

    tier.__name__ = f"{channel}_tier"
    return tier


app_metadata_tier = _metadata_tier("app_metadata")
user_metadata_tier = _metadata_tier("user_metadata")


def membership_tier(principal: Principal, membership: Optional[MembershipSnapshot]) -> Optional[RoleHint]:
    if membership is None:
        return None
    role = normalize_role_token(membership.role)
    if role not in (AppRole.SUPERADMIN, AppRole.ADMIN):
        role = AppRole.PARTNER
    return RoleHint(role, "membership", membership.partner_id)


def default_tier(principal: Principal, membership: Optional[MembershipSnapshot]) -> Optional[RoleHint]:
    return RoleHint(AppRole.PARTNER, "default")


DEFAULT_TIERS: Tuple[TierFn, ...] = (
    allowlist_tier,
    app_metadata_tier,
    user_metadata_tier,
    membership_tier,
    default_tier,
)


def build_identity(
    principal: Principal,
    membership: Optional[MembershipSnapshot],
    tiers: Tuple[TierFn, ...] = DEFAULT_TIERS,
) -> ResolvedIdentity:
    """Pure resolution step: apply the tiers, then the disabled flag."""
    hint: Optional[RoleHint] = None
    for tier in tiers:
        hint = tier(principal, membership)
        if hint is not None:
            break
    if hint is None:
        hint = RoleHint(AppRole.PARTNER, "default")

    partner_id = hint.partner_id
    if partner_id is None and membership is not None:
        partner_id = membership.partner_id
    if hint.role == AppRole.SUPERADMIN and hint.source == "allowlist":
        partner_id = None

    email = principal.email or (membership.email if membership else None)
    return ResolvedIdentity(
        principal_id=principal.id,
        role=hint.role,
        email=email,
        partner_id=partner_id,
        is_disabled=bool(membership and membership.is_disabled),
        source=hint.source,
    )


def unresolved_identity(principal: Principal) -> ResolvedIdentity:
    return ResolvedIdentity(
        principal_id=principal.id,
        role=AppRole.UNKNOWN,
        email=principal.email,
        source="timeout",
    )


def _load_membership(bind, principal_id: str) -> Optional[MembershipSnapshot]:
    with Session(bind=bind) as session:
        row = session.query(PartnerMember).filter(PartnerMember.principal_id == principal_id).first()
        return MembershipSnapshot.from_row(row) if row else None


class _CacheEntry(NamedTuple):
    identity: ResolvedIdentity
    expires_at: float
    version: int


class IdentityResolver:
    def __init__(
        self,
        *,
        ttl_seconds: Optional[float] = None,
        lookup_timeout_seconds: Optional[float] = None,
        tiers: Tuple[TierFn, ...] = DEFAULT_TIERS,
        max_workers: int = 4,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._lookup_timeout_seconds = lookup_timeout_seconds
        self.tiers = tiers
        self._entries: Dict[str, _CacheEntry] = {}
        self._versions: Dict[str, int] = {}
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="identity-lookup")

    @property
    def ttl_seconds(self) -> float:
        if self._ttl_seconds is not None:
            return self._ttl_seconds
        return float(settings.identity_cache_ttl_seconds)

    @property
    def lookup_timeout_seconds(self) -> float:
        if self._lookup_timeout_seconds is not None:
            return self._lookup_timeout_seconds
        return float(settings.identity_lookup_timeout_seconds)

    def resolve(self, db: Session, principal: Principal) -> ResolvedIdentity:
        now = time.monotonic()
        with self._lock:
            version = self._versions.get(principal.id, 0)
            entry = self._entries.get(principal.id)
            if entry is not None and entry.expires_at > now and entry.version == version:
                identity_cache_total.labels(result="hit").inc()
                return entry.identity
        identity_cache_total.labels(result="miss").inc()

        try:
            membership = self._lookup_membership(db, principal.id)
        except FutureTimeoutError:
            identity_cache_total.labels(result="timeout").inc()
            logger.warning(
                "identity_lookup_timeout",
                extra={"principal_id": principal.id},
            )
            return unresolved_identity(principal)
        except SQLAlchemyError as exc:
            logger.error(
                "identity_lookup_failed",
                extra={"principal_id": principal.id},
                exc_info=exc,
            )
            raise IdentityUnresolvable("Identity store unavailable") from exc

        identity = build_identity(principal, membership, self.tiers)
        with self._lock:
            if self._versions.get(principal.id, 0) == version:
                self._entries[principal.id] = _CacheEntry(
                    identity=identity,
                    expires_at=time.monotonic() + self.ttl_seconds,
                    version=version,
                )
            else:
                identity_cache_total.labels(result="stale_write_skipped").inc()
        return identity

    def _lookup_membership(self, db: Session, principal_id: str) -> Optional[MembershipSnapshot]:
        future = self._executor.submit(_load_membership, db.get_bind(), principal_id)
        return future.result(timeout=self.lookup_timeout_seconds)

    def invalidate(self, principal_id: str) -> None:
        with self._lock:
            self._versions[principal_id] = self._versions.get(principal_id, 0) + 1
            self._entries.pop(principal_id, None)
        identity_cache_total.labels(result="evicted").inc()
        logger.info("identity_evicted", extra={"principal_id": principal_id})

    def clear(self) -> None:
        with self._lock:
            for principal_id in list(self._entries):
                self._versions[principal_id] = self._versions.get(principal_id, 0) + 1
            self._entries.clear()

    def cached(self, principal_id: str) -> Optional[ResolvedIdentity]:
        with self._lock:
            entry = self._entries.get(principal_id)
            return entry.identity if entry else None


identity_resolver = IdentityResolver()
