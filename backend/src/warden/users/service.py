"""Identity administration.

Identities are never deleted. Deactivation flips is_active and revokes every
session in the same transaction, so the identity is locked out on its next
request.
"""

import logging
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..audit.actions import AuditAction
from ..audit.service import AuditEntry, create_audit_log
from ..auth.context import AuthContext, check_permission
from ..auth.password import hash_password, validate_password_strength
from ..database import atomic
from ..errors import ConflictError, NotFoundError, ValidationFailedError
from ..models.identity import Identity
from ..models.role import IdentityRole, Role
from ..rbac.permissions import PermissionId
from ..sessions.service import SessionStore

logger = logging.getLogger(__name__)


class IdentityService:
    """Tenant-scoped identity administration"""

    def __init__(self, db: Session):
        self.db = db

    def _get(self, tenant_id: int, identity_id: int, lock: bool = False) -> Identity:
        query = self.db.query(Identity).filter(Identity.id == identity_id, Identity.tenant_id == tenant_id)
        if lock:
            query = query.with_for_update()
        identity = query.first()
        if identity is None:
            raise NotFoundError("Identity not found")
        return identity

    def list_identities(
        self,
        auth: AuthContext,
        include_inactive: bool = True,
        page: int = 1,
        per_page: int = 50,
    ) -> Tuple[List[Identity], int]:
        check_permission(auth, PermissionId.USER_VIEW)
        query = self.db.query(Identity).filter(Identity.tenant_id == auth.tenant_id)
        if not include_inactive:
            query = query.filter(Identity.is_active.is_(True))
        total = query.count()
        items = query.order_by(Identity.email).offset((page - 1) * per_page).limit(per_page).all()
        return items, total

    def get_identity(self, auth: AuthContext, identity_id: int) -> Identity:
        check_permission(auth, PermissionId.USER_VIEW)
        return self._get(auth.tenant_id, identity_id)

    def create_identity(
        self,
        auth: AuthContext,
        email: str,
        name: str,
        password: Optional[str] = None,
        role_ids: Iterable[int] = (),
    ) -> Identity:
        """Create an identity in the caller's tenant (USER_CREATE).

        Without a password the identity stays pending activation and cannot
        log in.

        Raises:
            ValidationFailedError: Weak password or unknown role
            ConflictError: Email already used in the tenant
        """
        check_permission(auth, PermissionId.USER_CREATE)
        email = email.lower()
        if password is not None:
            ok, message = validate_password_strength(password, email)
            if not ok:
                raise ValidationFailedError(message)

        requested = sorted({int(rid) for rid in role_ids})
        try:
            with atomic(self.db):
                roles = (
                    self.db.query(Role)
                    .filter(Role.tenant_id == auth.tenant_id, Role.id.in_(requested))
                    .all()
                ) if requested else []
                if len(roles) != len(requested):
                    raise ValidationFailedError("Unknown role id")

                identity = Identity(
                    tenant_id=auth.tenant_id,
                    email=email,
                    name=name,
                    password_hash=hash_password(password) if password else None,
                    is_active=True,
                )
                self.db.add(identity)
                self.db.flush()
                self.db.add_all(IdentityRole(identity=identity, role=role) for role in roles)
                create_audit_log(
                    AuditEntry.from_auth(
                        auth,
                        AuditAction.USER_CREATE,
                        target_id=identity.id,
                        entity_type="IDENTITY",
                        entity_id=identity.id,
                        details=f"Identity {email} created",
                        metadata={"email": email, "roleIds": requested},
                    ),
                    session=self.db,
                )
        except IntegrityError:
            raise ConflictError("An identity with this email already exists")

        logger.info("Identity created", extra={"tenant_id": auth.tenant_id, "target_id": identity.id})
        return identity

    def deactivate(self, auth: AuthContext, identity_id: int) -> int:
        """Deactivate an identity and revoke all of its sessions (USER_UPDATE).

        Returns:
            Number of sessions revoked

        Raises:
            ValidationFailedError: Caller targets itself
            NotFoundError: Identity absent or in another tenant
        """
        check_permission(auth, PermissionId.USER_UPDATE)
        if identity_id == auth.identity_id:
            raise ValidationFailedError("You cannot deactivate yourself")

        with atomic(self.db):
            identity = self._get(auth.tenant_id, identity_id, lock=True)
            if not identity.is_active:
                return 0
            identity.is_active = False
            revoked = SessionStore(self.db).bulk_revoke(identity.id, auth.ip_address)
            create_audit_log(
                AuditEntry.from_auth(
                    auth,
                    AuditAction.USER_DEACTIVATE,
                    target_id=identity.id,
                    entity_type="IDENTITY",
                    entity_id=identity.id,
                    details=f"Identity {identity.email} deactivated",
                    metadata={"email": identity.email, "revokedCount": revoked},
                ),
                session=self.db,
            )

        logger.info(
            "Identity deactivated",
            extra={"tenant_id": auth.tenant_id, "target_id": identity_id, "revoked_sessions": revoked},
        )
        return revoked

    def reactivate(self, auth: AuthContext, identity_id: int) -> Identity:
        """Reactivate an identity (USER_UPDATE). Revoked sessions stay revoked."""
        check_permission(auth, PermissionId.USER_UPDATE)
        with atomic(self.db):
            identity = self._get(auth.tenant_id, identity_id, lock=True)
            if not identity.is_active:
                identity.is_active = True
                create_audit_log(
                    AuditEntry.from_auth(
                        auth,
                        AuditAction.USER_REACTIVATE,
                        target_id=identity.id,
                        entity_type="IDENTITY",
                        entity_id=identity.id,
                        details=f"Identity {identity.email} reactivated",
                        metadata={"email": identity.email},
                    ),
                    session=self.db,
                )
        return identity
