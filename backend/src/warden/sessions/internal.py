"""Internal session validation endpoint.

Other services of the deployment call this to check a session id. It is not
meant to be reachable from the public network, and is additionally gated by
a shared secret in the X-Internal-Secret header. A missing or wrong secret
yields 401 whatever the state of the session.
"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from ..config import get_settings
from ..database import get_db
from ..errors import UnauthenticatedError
from .schemas import SessionValidateRequest, SessionValidateResponse
from .service import SessionStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal/sessions", tags=["Internal"], include_in_schema=False)


def require_internal_secret(x_internal_secret: Optional[str] = Header(default=None)) -> None:
    """Constant-time check of the shared secret.

    Raises:
        UnauthenticatedError: Secret not configured, missing or wrong
    """
    expected = get_settings().INTERNAL_API_SECRET
    if not expected or not x_internal_secret:
        raise UnauthenticatedError("Invalid internal credentials")
    if not hmac.compare_digest(x_internal_secret.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("Internal session validation rejected: wrong secret")
        raise UnauthenticatedError("Invalid internal credentials")


@router.post("/validate", response_model=SessionValidateResponse)
def validate_session(
    body: SessionValidateRequest,
    _secret: None = Depends(require_internal_secret),
    db: Session = Depends(get_db),
) -> SessionValidateResponse:
    result = SessionStore(db).validate_session(body.session_id)
    if not result.valid:
        return SessionValidateResponse(valid=False, reason=result.reason.value)

    session = result.session
    return SessionValidateResponse(
        valid=True,
        identity_id=session.identity_id,
        tenant_id=session.identity.tenant_id,
        expires_at=session.expires_at,
    )
