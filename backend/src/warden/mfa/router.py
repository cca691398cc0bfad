"""MFA enrollment and removal endpoints"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.dependencies import CurrentAuth
from ..database import get_db
from .schemas import (
    MfaDisableRequest,
    MfaDisableResponse,
    MfaEnableRequest,
    MfaEnableResponse,
    MfaSetupResponse,
    MfaStatusResponse,
)
from .service import MfaService

router = APIRouter(prefix="/mfa", tags=["MFA"])


@router.get("/status", response_model=MfaStatusResponse)
def mfa_status(auth: CurrentAuth, db: Session = Depends(get_db)) -> MfaStatusResponse:
    return MfaStatusResponse(
        enabled=auth.identity.mfa_enabled,
        backup_codes_remaining=MfaService(db).remaining_backup_codes(auth.identity_id),
    )


@router.post("/setup", response_model=MfaSetupResponse)
def setup_mfa(auth: CurrentAuth, db: Session = Depends(get_db)) -> MfaSetupResponse:
    """Start enrollment: returns a fresh secret and its provisioning URI."""
    secret, uri = MfaService(db).begin_enrollment(auth)
    return MfaSetupResponse(secret=secret, provisioning_uri=uri)


@router.post("/enable", response_model=MfaEnableResponse)
def enable_mfa(body: MfaEnableRequest, auth: CurrentAuth, db: Session = Depends(get_db)) -> MfaEnableResponse:
    """Confirm enrollment with a code generated from the proposed secret."""
    codes = MfaService(db).confirm_enrollment(auth, body.secret, body.code)
    return MfaEnableResponse(backup_codes=codes)


@router.post("/disable", response_model=MfaDisableResponse)
def disable_mfa(body: MfaDisableRequest, auth: CurrentAuth, db: Session = Depends(get_db)) -> MfaDisableResponse:
    """Disable MFA with password plus TOTP or backup code.

    Every session of the identity is revoked, including the current one.
    """
    revoked = MfaService(db).disable(auth, body.password, body.code)
    return MfaDisableResponse(revoked_sessions=revoked)


@router.post("/admin/users/{identity_id}/reset", response_model=MfaDisableResponse)
def admin_reset_mfa(identity_id: int, auth: CurrentAuth, db: Session = Depends(get_db)) -> MfaDisableResponse:
    """Clear another identity's MFA (USER_UPDATE)."""
    revoked = MfaService(db).admin_reset(auth, identity_id)
    return MfaDisableResponse(revoked_sessions=revoked)
