"""FastAPI dependencies for authentication and authorization.

get_auth_context (requireAuth) runs on every protected request:
1. Extract the Bearer access token
2. Verify its signature, expiry and type
3. Validate the referenced session (unrevoked, unexpired, identity active)
4. Check the token's identity and tenant match the session's
5. Resolve the identity's permissions fresh from the store

require_permission(...) adds the permission check on top.

Usage:
    @router.get("/me")
    def me(auth: CurrentAuth):
        return {"id": auth.identity_id}

    @router.post("/roles")
    def create_role(auth: AuthContext = Depends(require_permission(PermissionId.ROLE_CREATE))):
        ...
"""

from typing import Annotated, Callable, Optional, Union

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from ..audit.service import get_client_ip, get_user_agent
from ..database import get_db
from ..errors import UnauthenticatedError
from ..rbac.permissions import PermissionId
from ..rbac.resolver import PermissionResolver
from ..sessions.service import SessionStore
from .context import AuthContext, check_permission
from .jwt import decode_token

# Missing credentials are reported as 401 by get_auth_context
security = HTTPBearer(auto_error=False)


def get_auth_context(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> AuthContext:
    """Authenticate the request and build its AuthContext.

    Raises:
        UnauthenticatedError: Missing, invalid or expired token, or a session
            that is not (or no longer) valid
    """
    if credentials is None:
        raise UnauthenticatedError("Missing bearer token")

    try:
        payload = decode_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise UnauthenticatedError("Token has expired")
    except jwt.InvalidTokenError:
        raise UnauthenticatedError("Invalid token")

    try:
        identity_id = int(payload["sub"])
        tenant_id = int(payload["tenant_id"])
        session_id = int(payload["sid"])
    except (KeyError, TypeError, ValueError):
        raise UnauthenticatedError("Invalid token claims")

    validation = SessionStore(db).validate_session(session_id)
    if not validation.valid:
        raise UnauthenticatedError(f"Session is not valid: {validation.reason.value}")

    identity = validation.session.identity
    if identity.id != identity_id or identity.tenant_id != tenant_id:
        raise UnauthenticatedError("Token does not match its session")

    auth = AuthContext(
        identity=identity,
        tenant_id=tenant_id,
        session_id=session_id,
        permissions=PermissionResolver(db).resolve(identity.id, tenant_id),
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    request.state.tenant_id = tenant_id
    request.state.user_id = identity.id
    return auth


CurrentAuth = Annotated[AuthContext, Depends(get_auth_context)]


def require_permission(permission: Union[PermissionId, int]) -> Callable:
    """Create a dependency that requires one permission.

    Raises:
        UnauthenticatedError: via get_auth_context
        ForbiddenError: Authenticated but the permission is absent
    """

    def permission_dependency(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
        return check_permission(auth, permission)

    return permission_dependency
