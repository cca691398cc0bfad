"""Session management API endpoints"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth.dependencies import CurrentAuth
from ..database import get_db
from .schemas import RevokeAllResponse, SessionListResponse, SessionResponse
from .service import SessionStore

router = APIRouter(prefix="/sessions", tags=["Sessions"])


@router.get("", response_model=SessionListResponse)
def list_my_sessions(auth: CurrentAuth, db: Session = Depends(get_db)) -> SessionListResponse:
    """All sessions of the current identity, most recently active first."""
    sessions = SessionStore(db).list_for_identity(auth.identity_id)
    return SessionListResponse(
        items=[SessionResponse.from_session(s, auth.session_id) for s in sessions],
        total=len(sessions),
    )


@router.post("/revoke-all", response_model=RevokeAllResponse)
def revoke_all_my_sessions(auth: CurrentAuth, db: Session = Depends(get_db)) -> RevokeAllResponse:
    """Revoke every session of the current identity, including this one."""
    count = SessionStore(db).revoke_all(auth.identity_id, auth)
    return RevokeAllResponse(revoked_count=count)


@router.get("/admin", response_model=SessionListResponse)
def list_tenant_sessions(auth: CurrentAuth, db: Session = Depends(get_db)) -> SessionListResponse:
    """Active sessions across the tenant (ADMIN_ACCESS)."""
    sessions = SessionStore(db).list_for_tenant(auth)
    return SessionListResponse(
        items=[SessionResponse.from_session(s, auth.session_id) for s in sessions],
        total=len(sessions),
    )


@router.post("/admin/identities/{identity_id}/revoke-all", response_model=RevokeAllResponse)
def revoke_identity_sessions(
    identity_id: int,
    auth: CurrentAuth,
    db: Session = Depends(get_db),
) -> RevokeAllResponse:
    """Revoke every session of another identity of the tenant (ADMIN_ACCESS)."""
    count = SessionStore(db).revoke_all(identity_id, auth)
    return RevokeAllResponse(revoked_count=count)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def revoke_session(session_id: int, auth: CurrentAuth, db: Session = Depends(get_db)) -> None:
    """Revoke one session. The owner or a tenant administrator may do this.

    Revoking an already revoked session succeeds and changes nothing.
    """
    SessionStore(db).revoke(session_id, auth)
