"""Multi-factor enrollment, verification and removal.

Backup code asymmetry:
- Step-up verification (login second factor) consumes a matched backup code
  immediately, so it can never match again.
- Disabling MFA accepts a backup code without consuming it individually;
  the whole set is deleted in the same transaction anyway.

Disabling or resetting MFA clears the secret, deletes every backup code,
revokes every session of the identity and writes one audit record, all in
one transaction.

The TOTP secret is stored encrypted (see warden.mfa.secret_box).
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from ..audit.actions import AuditAction
from ..audit.service import AuditEntry, create_audit_log
from ..auth.context import AuthContext, check_permission
from ..auth.password import verify_password
from ..clock import utcnow
from ..database import atomic
from ..errors import NotFoundError, UnauthenticatedError, ValidationFailedError
from ..models.identity import Identity
from ..models.mfa_backup_code import MfaBackupCode
from ..rbac.permissions import PermissionId
from ..sessions.service import SessionStore
from .backup_codes import backup_code_matches, generate_backup_codes, hash_backup_code
from .secret_box import open_secret, seal_secret
from .totp import generate_secret, provisioning_uri, verify_totp

logger = logging.getLogger(__name__)

FACTOR_TOTP = "totp"
FACTOR_BACKUP_CODE = "backup_code"


class MfaService:
    """Second-factor operations for identities"""

    def __init__(self, db: Session):
        self.db = db

    def _lock_identity(self, identity_id: int, tenant_id: int) -> Optional[Identity]:
        return (
            self.db.query(Identity)
            .filter(Identity.id == identity_id, Identity.tenant_id == tenant_id)
            .with_for_update()
            .first()
        )

    # ------------------------------------------------------------------
    # Verification primitives
    # ------------------------------------------------------------------

    def verify_backup_code(self, identity_id: int, code: str, consume: bool) -> bool:
        """Check a code against the identity's unused backup code hashes.

        Args:
            identity_id: Identity owning the codes
            code: Code entered by the user
            consume: Mark the matched code used (step-up path). The update is
                guarded on used = false, so concurrent attempts with the same
                code cannot both succeed.

        Returns:
            True if an unused code matched (and, when consuming, was claimed)
        """
        if not code:
            return False

        candidates = (
            self.db.query(MfaBackupCode)
            .filter(MfaBackupCode.identity_id == identity_id, MfaBackupCode.used.is_(False))
            .all()
        )
        for candidate in candidates:
            if not backup_code_matches(code, candidate.code_hash):
                continue
            if not consume:
                return True
            claimed = (
                self.db.query(MfaBackupCode)
                .filter(MfaBackupCode.id == candidate.id, MfaBackupCode.used.is_(False))
                .update({"used": True, "used_at": utcnow()}, synchronize_session="fetch")
            )
            return claimed == 1
        return False

    def verify_second_factor(self, identity: Identity, code: str, consume_backup: bool) -> Optional[str]:
        """Try TOTP first, then backup codes.

        Returns:
            FACTOR_TOTP, FACTOR_BACKUP_CODE, or None when nothing matched
        """
        if identity.mfa_secret and verify_totp(open_secret(identity.mfa_secret, identity.id), code):
            return FACTOR_TOTP
        if self.verify_backup_code(identity.id, code, consume=consume_backup):
            return FACTOR_BACKUP_CODE
        return None

    def verify_step_up(self, identity: Identity, code: str) -> Optional[str]:
        """Login second factor; a matched backup code is consumed."""
        return self.verify_second_factor(identity, code, consume_backup=True)

    def remaining_backup_codes(self, identity_id: int) -> int:
        return (
            self.db.query(MfaBackupCode)
            .filter(MfaBackupCode.identity_id == identity_id, MfaBackupCode.used.is_(False))
            .count()
        )

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    def begin_enrollment(self, auth: AuthContext) -> Tuple[str, str]:
        """Propose a new secret; nothing is stored until confirmation.

        Returns:
            (secret, otpauth provisioning URI)
        """
        if auth.identity.mfa_enabled:
            raise ValidationFailedError("MFA is already enabled")
        secret = generate_secret()
        return secret, provisioning_uri(secret, auth.identity.email)

    def confirm_enrollment(self, auth: AuthContext, secret: str, code: str) -> List[str]:
        """Enable MFA once the user proves possession of the secret.

        Returns:
            The 10 plaintext backup codes. They are not recoverable later.

        Raises:
            ValidationFailedError: MFA already enabled or code does not match
        """
        if not verify_totp(secret, code):
            raise ValidationFailedError("Invalid verification code")

        codes = generate_backup_codes()
        with atomic(self.db):
            identity = self._lock_identity(auth.identity_id, auth.tenant_id)
            if identity is None:
                raise NotFoundError("Identity not found")
            if identity.mfa_enabled:
                raise ValidationFailedError("MFA is already enabled")

            identity.mfa_secret = seal_secret(secret, identity.id)
            identity.mfa_enabled = True
            self.db.query(MfaBackupCode).filter(
                MfaBackupCode.identity_id == identity.id
            ).delete(synchronize_session=False)
            self.db.add_all(
                MfaBackupCode(identity_id=identity.id, code_hash=hash_backup_code(code_value))
                for code_value in codes
            )
            create_audit_log(
                AuditEntry.from_auth(
                    auth,
                    AuditAction.MFA_ENABLED,
                    target_id=identity.id,
                    entity_type="IDENTITY",
                    entity_id=identity.id,
                    details="Multi-factor authentication enabled",
                    metadata={"backupCodeCount": len(codes)},
                ),
                session=self.db,
            )

        logger.info("MFA enabled", extra={"user_id": auth.identity_id, "tenant_id": auth.tenant_id})
        return codes

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def disable(self, auth: AuthContext, password: str, code: str, ip_address: Optional[str] = None) -> int:
        """Disable MFA for the caller.

        Requires the account password and a valid TOTP or backup code. The
        backup code is not consumed on its own; all codes are deleted.

        Returns:
            Number of sessions revoked (includes the caller's own)

        Raises:
            ValidationFailedError: Missing input or MFA not enabled
            UnauthenticatedError: Wrong password or second factor
        """
        if not password or not code:
            raise ValidationFailedError("Password and verification code are required")

        with atomic(self.db):
            identity = self._lock_identity(auth.identity_id, auth.tenant_id)
            if identity is None:
                raise NotFoundError("Identity not found")
            if not identity.mfa_enabled:
                raise ValidationFailedError("MFA is not enabled")
            if not verify_password(password, identity.password_hash):
                raise UnauthenticatedError("Invalid password")

            factor = self.verify_second_factor(identity, code, consume_backup=False)
            if factor is None:
                raise UnauthenticatedError("Invalid verification code")

            revoked = self._clear(identity, ip_address or auth.ip_address)
            create_audit_log(
                AuditEntry.from_auth(
                    auth,
                    AuditAction.MFA_DISABLED,
                    target_id=identity.id,
                    entity_type="IDENTITY",
                    entity_id=identity.id,
                    details="Multi-factor authentication disabled; all sessions revoked",
                    metadata={"factor": factor, "revokedCount": revoked},
                ),
                session=self.db,
            )

        logger.info(
            "MFA disabled",
            extra={"user_id": auth.identity_id, "tenant_id": auth.tenant_id, "revoked_sessions": revoked},
        )
        return revoked

    def admin_reset(self, auth: AuthContext, identity_id: int) -> int:
        """Administrator clears another identity's MFA (lost device).

        Returns:
            Number of sessions revoked

        Raises:
            ForbiddenError: Caller lacks USER_UPDATE
            NotFoundError: Identity absent or in another tenant
            ValidationFailedError: Caller targets itself
        """
        check_permission(auth, PermissionId.USER_UPDATE)
        if identity_id == auth.identity_id:
            raise ValidationFailedError("Use the disable flow to remove your own MFA")

        with atomic(self.db):
            identity = self._lock_identity(identity_id, auth.tenant_id)
            if identity is None:
                raise NotFoundError("Identity not found")

            revoked = self._clear(identity, auth.ip_address)
            create_audit_log(
                AuditEntry.from_auth(
                    auth,
                    AuditAction.USER_MFA_RESET_BY_ADMIN,
                    target_id=identity.id,
                    entity_type="IDENTITY",
                    entity_id=identity.id,
                    details=f"MFA reset by administrator for {identity.email}",
                    metadata={"email": identity.email, "revokedCount": revoked},
                ),
                session=self.db,
            )

        logger.info(
            "MFA reset by administrator",
            extra={"user_id": auth.identity_id, "tenant_id": auth.tenant_id, "target_id": identity_id},
        )
        return revoked

    def _clear(self, identity: Identity, by_ip: Optional[str]) -> int:
        identity.mfa_enabled = False
        identity.mfa_secret = None
        self.db.query(MfaBackupCode).filter(
            MfaBackupCode.identity_id == identity.id
        ).delete(synchronize_session=False)
        return SessionStore(self.db).bulk_revoke(identity.id, by_ip)
