"""Tenant bootstrap: permission catalog, system roles and first administrator."""

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from ..audit.actions import AuditAction
from ..audit.service import AuditEntry, create_audit_log
from ..auth.password import hash_password, validate_password_strength
from ..database import atomic
from ..errors import ConflictError, ValidationFailedError
from ..models.identity import Identity
from ..models.role import IdentityRole
from ..models.tenant import Tenant
from ..rbac.permissions import ADMIN_ROLE_NAME
from ..rbac.service import seed_permissions, seed_system_roles

logger = logging.getLogger(__name__)


@dataclass
class BootstrapResult:
    tenant: Tenant
    admin: Identity
    created_tenant: bool


def bootstrap_tenant(
    db: Session,
    code: str,
    name: str,
    admin_email: str,
    admin_password: str,
    admin_name: str = "Administrator",
) -> BootstrapResult:
    """Create (or complete) a tenant with its system roles and an ADMIN identity.

    Safe to re-run for an existing tenant: missing permissions and roles are
    added, but an existing administrator email is a conflict.

    Raises:
        ValidationFailedError: Weak administrator password
        ConflictError: The administrator email already exists in the tenant
    """
    ok, message = validate_password_strength(admin_password, admin_email)
    if not ok:
        raise ValidationFailedError(message)
    admin_email = admin_email.lower()

    with atomic(db):
        seed_permissions(db)

        tenant = db.query(Tenant).filter(Tenant.code == code).first()
        created_tenant = tenant is None
        if created_tenant:
            tenant = Tenant(code=code, name=name)
            db.add(tenant)
            db.flush()

        roles = {role.name: role for role in seed_system_roles(db, tenant.id)}

        exists = (
            db.query(Identity.id)
            .filter(Identity.tenant_id == tenant.id, Identity.email == admin_email)
            .first()
        )
        if exists:
            raise ConflictError(f"Identity {admin_email} already exists in tenant {code}")

        admin = Identity(
            tenant_id=tenant.id,
            email=admin_email,
            name=admin_name,
            password_hash=hash_password(admin_password),
            is_active=True,
        )
        db.add(admin)
        db.flush()
        db.add(IdentityRole(identity=admin, role=roles[ADMIN_ROLE_NAME]))

        create_audit_log(
            AuditEntry(
                tenant_id=tenant.id,
                action=AuditAction.USER_CREATE,
                target_id=admin.id,
                entity_type="IDENTITY",
                entity_id=admin.id,
                details=f"Initial administrator {admin_email} created",
                metadata={"email": admin_email, "roleIds": [roles[ADMIN_ROLE_NAME].id]},
            ),
            session=db,
        )

    logger.info("Tenant bootstrapped", extra={"tenant_id": tenant.id, "created_tenant": created_tenant})
    return BootstrapResult(tenant=tenant, admin=admin, created_tenant=created_tenant)
