"""Identity administration endpoints"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..auth.dependencies import CurrentAuth
from ..database import get_db
from .schemas import DeactivateResponse, IdentityCreate, IdentityListResponse, IdentityResponse
from .service import IdentityService

router = APIRouter(prefix="/users", tags=["User Management"])


@router.get("", response_model=IdentityListResponse)
def list_users(
    auth: CurrentAuth,
    db: Session = Depends(get_db),
    include_inactive: bool = Query(True),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
) -> IdentityListResponse:
    items, total = IdentityService(db).list_identities(auth, include_inactive, page, per_page)
    return IdentityListResponse(
        items=[IdentityResponse.model_validate(i) for i in items],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.post("", response_model=IdentityResponse, status_code=status.HTTP_201_CREATED)
def create_user(body: IdentityCreate, auth: CurrentAuth, db: Session = Depends(get_db)):
    return IdentityService(db).create_identity(auth, body.email, body.name, body.password, body.role_ids)


@router.get("/{identity_id}", response_model=IdentityResponse)
def get_user(identity_id: int, auth: CurrentAuth, db: Session = Depends(get_db)):
    return IdentityService(db).get_identity(auth, identity_id)


@router.post("/{identity_id}/deactivate", response_model=DeactivateResponse)
def deactivate_user(identity_id: int, auth: CurrentAuth, db: Session = Depends(get_db)) -> DeactivateResponse:
    """Deactivate an identity; all of its sessions are revoked."""
    revoked = IdentityService(db).deactivate(auth, identity_id)
    return DeactivateResponse(id=identity_id, is_active=False, revoked_sessions=revoked)


@router.post("/{identity_id}/reactivate", response_model=IdentityResponse)
def reactivate_user(identity_id: int, auth: CurrentAuth, db: Session = Depends(get_db)):
    return IdentityService(db).reactivate(auth, identity_id)
