"""Effective permission resolution.

Permissions are resolved from the store on every request. There is no
cache: a role or grant change must take effect on the very next request.
"""

import logging
from dataclasses import dataclass
from typing import FrozenSet, Union

from sqlalchemy.orm import Session

from ..models.identity import Identity
from ..models.role import IdentityRole, Permission, Role, RolePermission
from .permissions import PermissionId

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedPermissions:
    permission_ids: FrozenSet[int]
    permission_codes: FrozenSet[str]

    def has(self, permission: Union[PermissionId, int]) -> bool:
        return int(permission) in self.permission_ids


EMPTY_PERMISSIONS = ResolvedPermissions(frozenset(), frozenset())


class PermissionResolver:
    """Derive an identity's capabilities from its tenant-scoped roles"""

    def __init__(self, db: Session):
        self.db = db

    def resolve(self, identity_id: int, tenant_id: int) -> ResolvedPermissions:
        """Union of the permissions granted by every role of the identity.

        Both the identity and the roles must belong to tenant_id; an
        assignment that crosses tenants contributes nothing.

        Args:
            identity_id: Identity to resolve
            tenant_id: Tenant the request is evaluated in

        Returns:
            ResolvedPermissions with numeric ids and codes
        """
        rows = (
            self.db.query(Permission.id, Permission.code)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .join(Role, Role.id == RolePermission.role_id)
            .join(IdentityRole, IdentityRole.role_id == Role.id)
            .join(Identity, Identity.id == IdentityRole.identity_id)
            .filter(
                IdentityRole.identity_id == identity_id,
                Role.tenant_id == tenant_id,
                Identity.tenant_id == tenant_id,
            )
            .distinct()
            .all()
        )

        resolved = ResolvedPermissions(
            permission_ids=frozenset(row.id for row in rows),
            permission_codes=frozenset(row.code for row in rows),
        )
        logger.debug(
            "Resolved permissions",
            extra={"user_id": identity_id, "tenant_id": tenant_id, "count": len(resolved.permission_ids)},
        )
        return resolved
