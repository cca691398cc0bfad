"""Role and permission administration endpoints"""

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth.dependencies import CurrentAuth
from ..database import get_db
from .schemas import PermissionResponse, RoleAssignmentRequest, RoleCreate, RoleResponse, RoleUpdate
from .service import RoleService

router = APIRouter(tags=["Roles"])


@router.get("/permissions", response_model=List[PermissionResponse])
def list_permissions(auth: CurrentAuth, db: Session = Depends(get_db)):
    return RoleService(db).list_permissions(auth)


@router.get("/roles", response_model=List[RoleResponse])
def list_roles(auth: CurrentAuth, db: Session = Depends(get_db)):
    return RoleService(db).list_roles(auth)


@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
def create_role(body: RoleCreate, auth: CurrentAuth, db: Session = Depends(get_db)):
    return RoleService(db).create_role(auth, body.name, body.permission_ids, body.description)


@router.get("/roles/{role_id}", response_model=RoleResponse)
def get_role(role_id: int, auth: CurrentAuth, db: Session = Depends(get_db)):
    return RoleService(db).get_role(auth, role_id)


@router.patch("/roles/{role_id}", response_model=RoleResponse)
def update_role(role_id: int, body: RoleUpdate, auth: CurrentAuth, db: Session = Depends(get_db)):
    return RoleService(db).update_role(
        auth,
        role_id,
        name=body.name,
        description=body.description,
        permission_ids=body.permission_ids,
    )


@router.delete("/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_role(role_id: int, auth: CurrentAuth, db: Session = Depends(get_db)) -> None:
    RoleService(db).delete_role(auth, role_id)


@router.get("/users/{identity_id}/roles", response_model=List[RoleResponse])
def get_identity_roles(identity_id: int, auth: CurrentAuth, db: Session = Depends(get_db)):
    return RoleService(db).roles_of(auth, identity_id)


@router.put("/users/{identity_id}/roles", response_model=List[RoleResponse])
def assign_identity_roles(
    identity_id: int,
    body: RoleAssignmentRequest,
    auth: CurrentAuth,
    db: Session = Depends(get_db),
):
    """Replace the role set of an identity (ROLE_ASSIGN)."""
    return RoleService(db).assign_roles(auth, identity_id, body.role_ids)
