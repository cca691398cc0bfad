"""Authenticated request context and the permission enforcement primitive"""

from dataclasses import dataclass
from typing import Optional, Union

from ..errors import ForbiddenError, UnauthenticatedError
from ..models.identity import Identity
from ..rbac.permissions import PermissionId
from ..rbac.resolver import ResolvedPermissions


@dataclass
class AuthContext:
    """Who is acting, in which tenant, through which session.

    Built once per request by get_auth_context after the session has been
    validated and the permissions freshly resolved.
    """

    identity: Identity
    tenant_id: int
    session_id: Optional[int]
    permissions: ResolvedPermissions
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def identity_id(self) -> int:
        return self.identity.id

    def has(self, permission: Union[PermissionId, int]) -> bool:
        return self.permissions.has(permission)


def check_permission(auth: Optional[AuthContext], permission: Union[PermissionId, int]) -> AuthContext:
    """Fail unless the caller holds the permission.

    Every service calls this before mutating protected state.

    Raises:
        UnauthenticatedError: No authenticated context
        ForbiddenError: Authenticated but the permission is absent
    """
    if auth is None:
        raise UnauthenticatedError()
    if not auth.has(permission):
        name = permission.name if isinstance(permission, PermissionId) else str(permission)
        raise ForbiddenError(f"Missing permission: {name}")
    return auth
