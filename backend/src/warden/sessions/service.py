"""Credential and session store.

A session is the refresh credential of one device. Only the SHA-256 of its
refresh token is stored. Access tokens carry the session id (sid), and the
session is re-validated on every request, so revocation takes effect
immediately.

Validity invariant:
    revoked_at IS NULL AND now < expires_at AND identity.is_active

Mutations other than internal validation require the acting identity to own
the session, or to hold ADMIN_ACCESS in the owner's tenant. Reaching into
another tenant is always FORBIDDEN.
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from ..audit.actions import AuditAction
from ..audit.service import AuditEntry, create_audit_log
from ..auth.context import AuthContext, check_permission
from ..clock import utcnow
from ..config import get_settings
from ..database import atomic
from ..errors import ForbiddenError, NotFoundError, UnauthenticatedError
from ..models.identity import Identity
from ..models.session import AuthSession
from ..rbac.permissions import PermissionId

logger = logging.getLogger(__name__)


class SessionInvalidReason(str, Enum):
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    SESSION_REVOKED = "SESSION_REVOKED"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    IDENTITY_INACTIVE = "IDENTITY_INACTIVE"


@dataclass(frozen=True)
class SessionValidation:
    valid: bool
    reason: Optional[SessionInvalidReason] = None
    session: Optional[AuthSession] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class IssuedSession:
    session: AuthSession
    refresh_token: str = field(repr=False)

    @property
    def session_id(self) -> int:
        return self.session.id

    @property
    def expires_at(self):
        return self.session.expires_at


def generate_refresh_token() -> str:
    return secrets.token_urlsafe(48)


def hash_refresh_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _session_lifetime() -> timedelta:
    return timedelta(days=get_settings().REFRESH_TOKEN_EXPIRE_DAYS)


def _invalid_reason(session: Optional[AuthSession], now) -> Optional[SessionInvalidReason]:
    if session is None:
        return SessionInvalidReason.SESSION_NOT_FOUND
    if session.revoked_at is not None:
        return SessionInvalidReason.SESSION_REVOKED
    if session.is_expired(now):
        return SessionInvalidReason.SESSION_EXPIRED
    if session.identity is None or not session.identity.is_active:
        return SessionInvalidReason.IDENTITY_INACTIVE
    return None


class SessionStore:
    """Issue, validate, rotate and revoke refresh sessions"""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Issue and validate
    # ------------------------------------------------------------------

    def create_session(
        self,
        identity_id: int,
        device_info: Optional[str] = None,
        ip_address: Optional[str] = None,
        mfa_verified: bool = False,
    ) -> IssuedSession:
        """Create a session for an authenticated identity.

        Runs inside the caller's transaction (login writes the session, the
        last-login timestamp and the LOGIN_SUCCESS record together).

        Args:
            identity_id: Authenticated identity
            device_info: User-Agent or device description
            ip_address: Client IP
            mfa_verified: Whether a second factor was presented

        Returns:
            IssuedSession with the session row and the plaintext refresh
            token (returned once, never stored)
        """
        now = utcnow()
        refresh_token = generate_refresh_token()
        session = AuthSession(
            identity_id=identity_id,
            token_hash=hash_refresh_token(refresh_token),
            device_info=device_info[:500] if device_info else None,
            ip_address=ip_address,
            mfa_verified=mfa_verified,
            created_at=now,
            last_active_at=now,
            expires_at=now + _session_lifetime(),
        )
        self.db.add(session)
        self.db.flush()

        logger.info(
            "Session created",
            extra={"user_id": identity_id, "session_id": session.id, "mfa_verified": mfa_verified},
        )
        return IssuedSession(session=session, refresh_token=refresh_token)

    def get(self, session_id) -> Optional[AuthSession]:
        try:
            pk = int(session_id)
        except (TypeError, ValueError):
            return None
        return self.db.get(AuthSession, pk)

    def validate_session(self, session_id) -> SessionValidation:
        """Check a session against the validity invariant.

        Used by the request path and by the internal validation endpoint.
        Never raises for an unusable session; the reason says why.
        """
        session = self.get(session_id)
        reason = _invalid_reason(session, utcnow())
        if reason is not None:
            return SessionValidation(valid=False, reason=reason, session=session)
        return SessionValidation(valid=True, session=session)

    def rotate(self, refresh_token: str, ip_address: Optional[str] = None) -> Tuple[AuthSession, str]:
        """Exchange a refresh token for a new one on the same session.

        The session keeps its id, gets a fresh token and a renewed expiry.
        Presenting the token that was just rotated away is reissued when it
        arrives within REFRESH_REUSE_GRACE_SECONDS of the rotation (two tabs
        refreshing at once). Later than that it is treated as theft: the
        session is revoked and REFRESH_TOKEN_REUSE is audited.

        Raises:
            UnauthenticatedError: Unknown, reused, revoked or expired token
        """
        presented_hash = hash_refresh_token(refresh_token or "")
        grace_seconds = get_settings().REFRESH_REUSE_GRACE_SECONDS
        reused = False
        reason = None
        new_token = None

        with atomic(self.db):
            now = utcnow()
            session = (
                self.db.query(AuthSession)
                .filter(AuthSession.token_hash == presented_hash)
                .with_for_update()
                .first()
            )

            if session is None:
                stale = (
                    self.db.query(AuthSession)
                    .filter(AuthSession.previous_token_hash == presented_hash)
                    .with_for_update()
                    .first()
                )
                if stale is not None and stale.rotated_within(now, grace_seconds):
                    logger.info(
                        "Rotated refresh token replayed within grace period; reissuing",
                        extra={"user_id": stale.identity_id, "session_id": stale.id},
                    )
                    session = stale
                elif stale is not None:
                    reused = True
                    if self._mark_revoked(stale, ip_address):
                        create_audit_log(
                            AuditEntry(
                                tenant_id=stale.identity.tenant_id,
                                action=AuditAction.REFRESH_TOKEN_REUSE,
                                actor_id=stale.identity_id,
                                target_id=stale.identity_id,
                                entity_type="SESSION",
                                entity_id=stale.id,
                                details="Rotated refresh token presented again; session revoked",
                                metadata={"sessionId": stale.id, "reason": "refresh_token_reuse"},
                                ip_address=ip_address,
                            ),
                            session=self.db,
                        )
                        logger.warning(
                            "Refresh token reuse detected",
                            extra={"user_id": stale.identity_id, "session_id": stale.id},
                        )

            if session is not None:
                reason = _invalid_reason(session, now)
                if reason is None:
                    new_token = generate_refresh_token()
                    # A grace reissue keeps the original rotation time, so one
                    # stale token buys at most one window
                    if session.token_hash == presented_hash:
                        session.previous_token_hash = session.token_hash
                        session.rotated_at = now
                    session.token_hash = hash_refresh_token(new_token)
                    session.last_active_at = now
                    session.expires_at = now + _session_lifetime()
                    if ip_address:
                        session.ip_address = ip_address

        if reused:
            raise UnauthenticatedError("Refresh token has already been used")
        if session is None:
            raise UnauthenticatedError("Invalid refresh token")
        if reason is not None:
            raise UnauthenticatedError(f"Session is not valid: {reason.value}")
        return session, new_token

    # ------------------------------------------------------------------
    # Revocation
    # ------------------------------------------------------------------

    def _authorize_owner(self, owner: Identity, auth: AuthContext) -> None:
        if owner.tenant_id != auth.tenant_id:
            logger.warning(
                "Cross-tenant session access denied",
                extra={"user_id": auth.identity_id, "tenant_id": auth.tenant_id},
            )
            raise ForbiddenError("Cross-tenant session access is not allowed")
        if owner.id == auth.identity_id:
            return
        if not auth.has(PermissionId.ADMIN_ACCESS):
            raise ForbiddenError("You can only manage your own sessions")

    def _mark_revoked(self, session: AuthSession, by_ip: Optional[str]) -> bool:
        """Set revoked_at unless already set; True if this call revoked it."""
        updated = (
            self.db.query(AuthSession)
            .filter(AuthSession.id == session.id, AuthSession.revoked_at.is_(None))
            .update({"revoked_at": utcnow(), "revoked_by_ip": by_ip}, synchronize_session="fetch")
        )
        return updated == 1

    def bulk_revoke(self, identity_id: int, by_ip: Optional[str] = None) -> int:
        """Revoke every unrevoked session of an identity inside the caller's transaction.

        Writes no audit record; callers decide from the count.
        """
        return (
            self.db.query(AuthSession)
            .filter(AuthSession.identity_id == identity_id, AuthSession.revoked_at.is_(None))
            .update({"revoked_at": utcnow(), "revoked_by_ip": by_ip}, synchronize_session="fetch")
        )

    def revoke(
        self,
        session_id: int,
        auth: AuthContext,
        by_ip: Optional[str] = None,
        audit_action: Optional[AuditAction] = None,
    ) -> AuthSession:
        """Revoke one session. Idempotent.

        The first call sets revoked_at/revoked_by_ip and writes the audit
        record in the same transaction; later calls change nothing and write
        nothing. audit_action overrides the recorded action (logout records
        LOGOUT).

        Raises:
            NotFoundError: No such session
            ForbiddenError: Not the owner, not an admin of the owner's
                tenant, or another tenant's session
        """
        by_ip = by_ip or auth.ip_address
        with atomic(self.db):
            session = (
                self.db.query(AuthSession)
                .filter(AuthSession.id == session_id)
                .with_for_update()
                .first()
            )
            if session is None:
                raise NotFoundError("Session not found")

            owner = session.identity
            self._authorize_owner(owner, auth)

            if self._mark_revoked(session, by_ip):
                by_admin = owner.id != auth.identity_id
                if audit_action is None:
                    audit_action = AuditAction.SESSION_REVOKED_BY_ADMIN if by_admin else AuditAction.SESSION_REVOKED
                create_audit_log(
                    AuditEntry.from_auth(
                        auth,
                        audit_action,
                        target_id=owner.id,
                        entity_type="SESSION",
                        entity_id=session.id,
                        details=f"Session {session.id} revoked",
                        metadata={"sessionId": session.id, "deviceInfo": session.device_info},
                        ip_address=by_ip,
                    ),
                    session=self.db,
                )

        return session

    def revoke_all(self, identity_id: int, auth: AuthContext, by_ip: Optional[str] = None) -> int:
        """Revoke every unrevoked session of an identity.

        Returns:
            Number of sessions revoked. SESSION_REVOKED_ALL is audited only
            when the count is non-zero.

        Raises:
            NotFoundError: No such identity
            ForbiddenError: Ownership check failed
        """
        by_ip = by_ip or auth.ip_address
        with atomic(self.db):
            owner = self.db.get(Identity, identity_id)
            if owner is None:
                raise NotFoundError("Identity not found")
            self._authorize_owner(owner, auth)

            count = self.bulk_revoke(owner.id, by_ip)
            if count:
                create_audit_log(
                    AuditEntry.from_auth(
                        auth,
                        AuditAction.SESSION_REVOKED_ALL,
                        target_id=owner.id,
                        entity_type="IDENTITY",
                        entity_id=owner.id,
                        details=f"{count} sessions revoked",
                        metadata={"revokedCount": count},
                        ip_address=by_ip,
                    ),
                    session=self.db,
                )

        logger.info("Sessions revoked", extra={"user_id": identity_id, "count": count})
        return count

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def list_for_identity(self, identity_id: int) -> List[AuthSession]:
        return (
            self.db.query(AuthSession)
            .filter(AuthSession.identity_id == identity_id)
            .order_by(AuthSession.last_active_at.desc(), AuthSession.id.desc())
            .all()
        )

    def list_for_tenant(self, auth: AuthContext) -> List[AuthSession]:
        """Active sessions of the caller's tenant (ADMIN_ACCESS)."""
        check_permission(auth, PermissionId.ADMIN_ACCESS)
        return (
            self.db.query(AuthSession)
            .join(Identity, Identity.id == AuthSession.identity_id)
            .filter(
                Identity.tenant_id == auth.tenant_id,
                AuthSession.revoked_at.is_(None),
                AuthSession.expires_at > utcnow(),
            )
            .order_by(AuthSession.last_active_at.desc())
            .all()
        )
