"""Login, second-factor completion, refresh and logout.

Login flow:
1. Resolve the tenant by code and the identity by (tenant, email)
2. Verify the Argon2 password hash
3. Identities with MFA get a short-lived mfa_pending token instead of a
   session; the session is only created after /auth/mfa/verify
4. Otherwise the session, last_login_at and LOGIN_SUCCESS are written in
   one transaction, then the access token is minted

Failures never reveal whether the tenant, the email or the password was
wrong. Failed attempts are audited as LOGIN_FAILED whenever the tenant is
known.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import jwt
from sqlalchemy.orm import Session

from ..audit.actions import AuditAction
from ..audit.service import AuditEntry, create_audit_log
from ..clock import utcnow
from ..config import get_settings
from ..database import atomic
from ..errors import UnauthenticatedError
from ..mfa.service import MfaService
from ..models.identity import Identity
from ..models.session import AuthSession
from ..models.tenant import Tenant
from ..sessions.service import IssuedSession, SessionStore
from .context import AuthContext
from .jwt import MFA_PENDING_TOKEN_TYPE, create_access_token, create_mfa_pending_token, decode_token
from .password import hash_password, password_needs_rehash, verify_password

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


@dataclass
class LoginResult:
    """Outcome of a successful credential check.

    Exactly one of (access_token, refresh_token, session) or mfa_token is set.
    """
    identity: Identity
    mfa_required: bool = False
    mfa_token: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    session: Optional[AuthSession] = None


def access_token_ttl_seconds() -> int:
    return get_settings().ACCESS_TOKEN_EXPIRE_MINUTES * 60


def issue_access_token(identity: Identity, session: AuthSession) -> str:
    return create_access_token(
        identity_id=identity.id,
        tenant_id=identity.tenant_id,
        session_id=session.id,
        email=identity.email,
    )


class AuthService:
    """Credential exchange for the /auth endpoints"""

    def __init__(self, db: Session):
        self.db = db
        self.sessions = SessionStore(db)

    def _record_failure(
        self,
        tenant_id: int,
        email: str,
        reason: str,
        identity: Optional[Identity],
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> None:
        with atomic(self.db):
            create_audit_log(
                AuditEntry(
                    tenant_id=tenant_id,
                    action=AuditAction.LOGIN_FAILED,
                    actor_id=identity.id if identity else None,
                    target_id=identity.id if identity else None,
                    entity_type="IDENTITY" if identity else None,
                    entity_id=identity.id if identity else None,
                    details=f"Failed login attempt for {email}",
                    metadata={"email": email, "reason": reason},
                    ip_address=ip_address,
                    user_agent=user_agent,
                ),
                session=self.db,
            )
        logger.warning("Login failed", extra={"tenant_id": tenant_id, "reason": reason})

    def _open_session(
        self,
        identity: Identity,
        mfa_verified: bool,
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> IssuedSession:
        """Create the session and audit LOGIN_SUCCESS; caller owns the transaction."""
        identity.last_login_at = utcnow()
        issued = self.sessions.create_session(
            identity.id,
            device_info=user_agent,
            ip_address=ip_address,
            mfa_verified=mfa_verified,
        )
        create_audit_log(
            AuditEntry(
                tenant_id=identity.tenant_id,
                action=AuditAction.LOGIN_SUCCESS,
                actor_id=identity.id,
                target_id=identity.id,
                entity_type="IDENTITY",
                entity_id=identity.id,
                details=f"User {identity.email} logged in",
                metadata={"email": identity.email, "mfaVerified": mfa_verified, "sessionId": issued.session_id},
                ip_address=ip_address,
                user_agent=user_agent,
            ),
            session=self.db,
        )
        return issued

    def login(
        self,
        tenant_code: str,
        email: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> LoginResult:
        """Check credentials and either open a session or start the MFA challenge.

        Raises:
            UnauthenticatedError: Unknown tenant, unknown email, wrong
                password or inactive identity (same message for all)
        """
        email = email.lower()
        tenant = self.db.query(Tenant).filter(Tenant.code == tenant_code).first()
        if tenant is None:
            logger.warning("Login attempt for unknown tenant")
            raise UnauthenticatedError(INVALID_CREDENTIALS)

        identity = (
            self.db.query(Identity)
            .filter(Identity.tenant_id == tenant.id, Identity.email == email)
            .first()
        )

        if identity is None or not verify_password(password, identity.password_hash or ""):
            reason = "unknown_identity" if identity is None else "invalid_password"
            self._record_failure(tenant.id, email, reason, identity, ip_address, user_agent)
            raise UnauthenticatedError(INVALID_CREDENTIALS)

        if not identity.is_active:
            self._record_failure(tenant.id, email, "account_disabled", identity, ip_address, user_agent)
            raise UnauthenticatedError(INVALID_CREDENTIALS)

        if password_needs_rehash(identity.password_hash):
            with atomic(self.db):
                identity.password_hash = hash_password(password)
            logger.info("Password hash upgraded", extra={"tenant_id": tenant.id, "user_id": identity.id})

        if identity.mfa_enabled:
            logger.info("MFA challenge issued", extra={"tenant_id": tenant.id, "user_id": identity.id})
            return LoginResult(
                identity=identity,
                mfa_required=True,
                mfa_token=create_mfa_pending_token(identity.id, tenant.id),
            )

        with atomic(self.db):
            issued = self._open_session(identity, False, ip_address, user_agent)

        logger.info("Login successful", extra={"tenant_id": tenant.id, "user_id": identity.id})
        return LoginResult(
            identity=identity,
            access_token=issue_access_token(identity, issued.session),
            refresh_token=issued.refresh_token,
            session=issued.session,
        )

    def complete_mfa_login(
        self,
        mfa_token: str,
        code: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> LoginResult:
        """Exchange an mfa_pending token plus a second factor for a session.

        A matched backup code is consumed in the same transaction that
        creates the session.

        Raises:
            UnauthenticatedError: Invalid or expired challenge, or wrong code
        """
        try:
            payload = decode_token(mfa_token, expected_type=MFA_PENDING_TOKEN_TYPE)
            identity_id = int(payload["sub"])
            tenant_id = int(payload["tenant_id"])
        except jwt.ExpiredSignatureError:
            raise UnauthenticatedError("MFA challenge has expired")
        except (jwt.InvalidTokenError, KeyError, TypeError, ValueError):
            raise UnauthenticatedError("Invalid MFA challenge")

        identity = (
            self.db.query(Identity)
            .filter(Identity.id == identity_id, Identity.tenant_id == tenant_id)
            .first()
        )
        if identity is None or not identity.is_active or not identity.mfa_enabled:
            raise UnauthenticatedError("Invalid MFA challenge")

        issued = None
        with atomic(self.db):
            factor = MfaService(self.db).verify_step_up(identity, code)
            if factor is not None:
                create_audit_log(
                    AuditEntry(
                        tenant_id=tenant_id,
                        action=AuditAction.MFA_VERIFIED,
                        actor_id=identity.id,
                        target_id=identity.id,
                        entity_type="IDENTITY",
                        entity_id=identity.id,
                        details="Second factor verified",
                        metadata={"factor": factor},
                        ip_address=ip_address,
                        user_agent=user_agent,
                    ),
                    session=self.db,
                )
                issued = self._open_session(identity, True, ip_address, user_agent)

        if issued is None:
            self._record_failure(tenant_id, identity.email, "invalid_mfa_code", identity, ip_address, user_agent)
            raise UnauthenticatedError("Invalid verification code")

        logger.info("Login successful", extra={"tenant_id": tenant_id, "user_id": identity.id, "factor": factor})
        return LoginResult(
            identity=identity,
            access_token=issue_access_token(identity, issued.session),
            refresh_token=issued.refresh_token,
            session=issued.session,
        )

    def refresh(self, refresh_token: str, ip_address: Optional[str] = None) -> LoginResult:
        """Rotate the refresh token and mint a new access token.

        Raises:
            UnauthenticatedError: See SessionStore.rotate
        """
        session, new_token = self.sessions.rotate(refresh_token, ip_address)
        identity = session.identity
        return LoginResult(
            identity=identity,
            access_token=issue_access_token(identity, session),
            refresh_token=new_token,
            session=session,
        )

    def logout(self, auth: AuthContext) -> None:
        """Revoke the caller's current session."""
        self.sessions.revoke(auth.session_id, auth, audit_action=AuditAction.LOGOUT)
        logger.info("Logout", extra={"tenant_id": auth.tenant_id, "user_id": auth.identity_id})
