"""Authentication API endpoints"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from ..audit.service import get_client_ip, get_user_agent
from ..database import get_db
from ..errors import UnauthenticatedError
from .dependencies import CurrentAuth
from .rate_limit import check_rate_limit, login_throttle
from .schemas import LoginRequest, LoginResponse, MeResponse, MfaVerifyRequest, RefreshRequest, TokenResponse
from .service import AuthService, LoginResult, access_token_ttl_seconds

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _token_response(result: LoginResult) -> TokenResponse:
    return TokenResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        expires_in=access_token_ttl_seconds(),
        session_id=result.session.id,
        refresh_expires_at=result.session.expires_at,
    )


@router.post("/login", response_model=LoginResponse, status_code=status.HTTP_200_OK)
def login(
    credentials: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(check_rate_limit),
) -> LoginResponse:
    """Authenticate with tenant code, email and password.

    Identities with MFA enabled receive mfa_required=true and an mfa_token
    instead of tokens.

    Raises:
        UnauthenticatedError (401): Invalid credentials or inactive account
        RateLimitedError (429): Throttled or locked out
    """
    service = AuthService(db)
    try:
        result = service.login(
            credentials.tenant_code,
            credentials.email,
            credentials.password,
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
        )
    except UnauthenticatedError:
        login_throttle.record_failure(credentials.tenant_code, credentials.email, request)
        raise

    if result.mfa_required:
        return LoginResponse(mfa_required=True, mfa_token=result.mfa_token)

    login_throttle.reset(credentials.tenant_code, credentials.email)
    return LoginResponse(**_token_response(result).model_dump())


@router.post("/mfa/verify", response_model=TokenResponse)
def verify_mfa(
    body: MfaVerifyRequest,
    request: Request,
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(check_rate_limit),
) -> TokenResponse:
    """Complete an MFA login with a TOTP or backup code."""
    result = AuthService(db).complete_mfa_login(
        body.mfa_token,
        body.code,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    login_throttle.reset(result.identity.tenant.code, result.identity.email)
    return _token_response(result)


@router.post("/refresh", response_model=TokenResponse)
def refresh(body: RefreshRequest, request: Request, db: Session = Depends(get_db)) -> TokenResponse:
    """Rotate a refresh token. The presented token stops working immediately."""
    result = AuthService(db).refresh(body.refresh_token, ip_address=get_client_ip(request))
    return _token_response(result)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(auth: CurrentAuth, db: Session = Depends(get_db)) -> None:
    """Revoke the current session."""
    AuthService(db).logout(auth)


@router.get("/me", response_model=MeResponse)
def get_current_user_info(auth: CurrentAuth) -> MeResponse:
    """Current identity and its effective permission codes."""
    me = MeResponse.model_validate(auth.identity)
    me.session_id = auth.session_id
    me.permissions = sorted(auth.permissions.permission_codes)
    return me
