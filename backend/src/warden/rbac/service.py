"""Role administration and permission catalog seeding.

Every role lives in exactly one tenant and can only grant permissions from
the global catalog. Changes take effect on the next request because
permissions are resolved fresh (see warden.rbac.resolver).
"""

import logging
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..audit.actions import AuditAction
from ..audit.service import AuditEntry, create_audit_log
from ..auth.context import AuthContext, check_permission
from ..database import atomic
from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationFailedError
from ..models.identity import Identity
from ..models.role import IdentityRole, Permission, Role, RolePermission
from .permissions import PERMISSION_DESCRIPTIONS, SYSTEM_ROLE_PERMISSIONS, PermissionId

logger = logging.getLogger(__name__)


def seed_permissions(db: Session) -> int:
    """Insert missing catalog entries; existing rows are left untouched.

    Runs inside the caller's transaction.

    Returns:
        Number of permissions inserted
    """
    existing = {pid for (pid,) in db.query(Permission.id).all()}
    missing = [p for p in PermissionId if int(p) not in existing]
    db.add_all(
        Permission(id=int(p), code=p.name, description=PERMISSION_DESCRIPTIONS.get(p))
        for p in missing
    )
    db.flush()
    return len(missing)


def seed_system_roles(db: Session, tenant_id: int) -> List[Role]:
    """Create the ADMIN and USER roles of a tenant if they do not exist yet.

    Runs inside the caller's transaction.
    """
    roles = []
    for name, permission_ids in SYSTEM_ROLE_PERMISSIONS.items():
        role = db.query(Role).filter(Role.tenant_id == tenant_id, Role.name == name).first()
        if role is None:
            role = Role(tenant_id=tenant_id, name=name, description=f"Built-in {name} role", is_system=True)
            role.grants = [RolePermission(permission_id=int(p)) for p in sorted(permission_ids)]
            db.add(role)
        roles.append(role)
    db.flush()
    return roles


class RoleService:
    """Tenant-scoped role CRUD and assignment"""

    def __init__(self, db: Session):
        self.db = db

    def _get_role(self, tenant_id: int, role_id: int) -> Role:
        role = (
            self.db.query(Role)
            .filter(Role.id == role_id, Role.tenant_id == tenant_id)
            .first()
        )
        if role is None:
            raise NotFoundError("Role not found")
        return role

    def _validate_permission_ids(self, permission_ids: Iterable[int]) -> List[int]:
        requested = sorted({int(pid) for pid in permission_ids})
        if not requested:
            return []
        known = {
            pid for (pid,) in self.db.query(Permission.id).filter(Permission.id.in_(requested)).all()
        }
        unknown = [pid for pid in requested if pid not in known]
        if unknown:
            raise ValidationFailedError(f"Unknown permission ids: {unknown}")
        return requested

    @staticmethod
    def _replace_grants(role: Role, permission_ids: List[int]) -> None:
        # Dropped grants are removed through delete-orphan; kept ones stay untouched
        wanted = set(permission_ids)
        for grant in list(role.grants):
            if grant.permission_id not in wanted:
                role.grants.remove(grant)
        held = {grant.permission_id for grant in role.grants}
        role.grants.extend(RolePermission(permission_id=pid) for pid in sorted(wanted - held))

    def _name_taken(self, tenant_id: int, name: str, exclude_id: Optional[int] = None) -> bool:
        query = self.db.query(Role.id).filter(Role.tenant_id == tenant_id, Role.name == name)
        if exclude_id is not None:
            query = query.filter(Role.id != exclude_id)
        return query.first() is not None

    def list_permissions(self, auth: AuthContext) -> List[Permission]:
        check_permission(auth, PermissionId.PERMISSION_VIEW)
        return self.db.query(Permission).order_by(Permission.id).all()

    def list_roles(self, auth: AuthContext) -> List[Role]:
        check_permission(auth, PermissionId.ROLE_VIEW)
        return (
            self.db.query(Role)
            .options(selectinload(Role.grants))
            .filter(Role.tenant_id == auth.tenant_id)
            .order_by(Role.name)
            .all()
        )

    def get_role(self, auth: AuthContext, role_id: int) -> Role:
        check_permission(auth, PermissionId.ROLE_VIEW)
        return self._get_role(auth.tenant_id, role_id)

    def create_role(
        self,
        auth: AuthContext,
        name: str,
        permission_ids: Iterable[int],
        description: Optional[str] = None,
    ) -> Role:
        """Create a role in the caller's tenant.

        Raises:
            ForbiddenError: Missing ROLE_CREATE
            ConflictError: Name already used in the tenant
            ValidationFailedError: Unknown permission id
        """
        check_permission(auth, PermissionId.ROLE_CREATE)
        name = name.strip()
        granted = self._validate_permission_ids(permission_ids)
        if self._name_taken(auth.tenant_id, name):
            raise ConflictError(f"Role '{name}' already exists")

        try:
            with atomic(self.db):
                role = Role(tenant_id=auth.tenant_id, name=name, description=description, is_system=False)
                role.grants = [RolePermission(permission_id=pid) for pid in granted]
                self.db.add(role)
                self.db.flush()
                create_audit_log(
                    AuditEntry.from_auth(
                        auth,
                        AuditAction.ROLE_CREATED,
                        entity_type="ROLE",
                        entity_id=role.id,
                        details=f"Role '{name}' created",
                        metadata={"roleName": name, "permissionIds": granted},
                    ),
                    session=self.db,
                )
        except IntegrityError:
            raise ConflictError(f"Role '{name}' already exists")

        logger.info("Role created", extra={"tenant_id": auth.tenant_id, "role_id": role.id})
        return role

    def update_role(
        self,
        auth: AuthContext,
        role_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        permission_ids: Optional[Iterable[int]] = None,
    ) -> Role:
        """Rename a role and/or replace its permission set in one transaction.

        Raises:
            ForbiddenError: Missing ROLE_UPDATE, or renaming a system role
            NotFoundError: No such role in the tenant
            ConflictError: New name already used
        """
        check_permission(auth, PermissionId.ROLE_UPDATE)
        granted = self._validate_permission_ids(permission_ids) if permission_ids is not None else None

        with atomic(self.db):
            role = self._get_role(auth.tenant_id, role_id)
            changed = []

            if name is not None and name.strip() != role.name:
                name = name.strip()
                if role.is_system:
                    raise ForbiddenError("System roles cannot be renamed")
                if self._name_taken(auth.tenant_id, name, exclude_id=role.id):
                    raise ConflictError(f"Role '{name}' already exists")
                role.name = name
                changed.append("name")

            if description is not None and description != role.description:
                role.description = description
                changed.append("description")

            current = role.permission_ids
            if granted is not None and granted != current:
                self._replace_grants(role, granted)
                current = granted
                changed.append("permissions")

            if changed:
                self.db.flush()
                create_audit_log(
                    AuditEntry.from_auth(
                        auth,
                        AuditAction.ROLE_UPDATED,
                        entity_type="ROLE",
                        entity_id=role.id,
                        details=f"Role '{role.name}' updated",
                        metadata={
                            "roleName": role.name,
                            "permissionIds": current,
                            "changedFields": changed,
                        },
                    ),
                    session=self.db,
                )

        return role

    def delete_role(self, auth: AuthContext, role_id: int) -> None:
        """Delete a non-system role and its assignments.

        Raises:
            ForbiddenError: Missing ROLE_DELETE, or a system role
            NotFoundError: No such role in the tenant
        """
        check_permission(auth, PermissionId.ROLE_DELETE)
        with atomic(self.db):
            role = self._get_role(auth.tenant_id, role_id)
            if role.is_system:
                raise ForbiddenError("System roles cannot be deleted")
            role_name = role.name
            self.db.delete(role)
            create_audit_log(
                AuditEntry.from_auth(
                    auth,
                    AuditAction.ROLE_DELETED,
                    entity_type="ROLE",
                    entity_id=role_id,
                    details=f"Role '{role_name}' deleted",
                    metadata={"roleName": role_name},
                ),
                session=self.db,
            )

        logger.info("Role deleted", extra={"tenant_id": auth.tenant_id, "role_id": role_id})

    def assign_roles(self, auth: AuthContext, identity_id: int, role_ids: Iterable[int]) -> List[Role]:
        """Replace the role set of an identity.

        Raises:
            ForbiddenError: Missing ROLE_ASSIGN, or changing one's own roles
            NotFoundError: Identity or a role outside the tenant
        """
        check_permission(auth, PermissionId.ROLE_ASSIGN)
        if identity_id == auth.identity_id:
            raise ForbiddenError("You cannot change your own roles")

        requested = sorted({int(rid) for rid in role_ids})
        with atomic(self.db):
            identity = (
                self.db.query(Identity)
                .filter(Identity.id == identity_id, Identity.tenant_id == auth.tenant_id)
                .first()
            )
            if identity is None:
                raise NotFoundError("Identity not found")

            roles = (
                self.db.query(Role)
                .filter(Role.tenant_id == auth.tenant_id, Role.id.in_(requested))
                .order_by(Role.id)
                .all()
            ) if requested else []
            if len(roles) != len(requested):
                raise NotFoundError("Role not found")

            wanted = {role.id for role in roles}
            for assignment in list(identity.role_assignments):
                if assignment.role_id not in wanted:
                    identity.role_assignments.remove(assignment)
            held = {assignment.role_id for assignment in identity.role_assignments}
            identity.role_assignments.extend(IdentityRole(role=role) for role in roles if role.id not in held)
            self.db.flush()
            create_audit_log(
                AuditEntry.from_auth(
                    auth,
                    AuditAction.ROLE_ASSIGNED,
                    target_id=identity.id,
                    entity_type="IDENTITY",
                    entity_id=identity.id,
                    details=f"Roles of {identity.email} replaced",
                    metadata={"roleIds": [r.id for r in roles], "roleNames": [r.name for r in roles]},
                ),
                session=self.db,
            )

        return roles

    def roles_of(self, auth: AuthContext, identity_id: int) -> List[Role]:
        check_permission(auth, PermissionId.ROLE_VIEW)
        return (
            self.db.query(Role)
            .join(IdentityRole, IdentityRole.role_id == Role.id)
            .join(Identity, Identity.id == IdentityRole.identity_id)
            .filter(IdentityRole.identity_id == identity_id, Identity.tenant_id == auth.tenant_id)
            .order_by(Role.name)
            .all()
        )
