"""Security alert endpoints (AUDIT_VIEW)"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth.dependencies import CurrentAuth
from ..database import get_db
from .schemas import SecurityAlertListResponse, SecurityAlertResponse, SecurityStatsResponse
from .service import AlertService, AlertSeverity

router = APIRouter(prefix="/security", tags=["Security"])


@router.get("/alerts", response_model=SecurityAlertListResponse)
def list_alerts(
    auth: CurrentAuth,
    db: Session = Depends(get_db),
    severity: Optional[AlertSeverity] = Query(None),
    is_read: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
) -> SecurityAlertListResponse:
    items, total = AlertService(db).list_alerts(auth, severity, is_read, page, per_page)
    return SecurityAlertListResponse(
        items=[SecurityAlertResponse.model_validate(a) for a in items],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.post("/alerts/{alert_id}/read", response_model=SecurityAlertResponse)
def mark_alert_read(alert_id: int, auth: CurrentAuth, db: Session = Depends(get_db)):
    return AlertService(db).mark_read(auth, alert_id)


@router.get("/stats", response_model=SecurityStatsResponse)
def security_stats(auth: CurrentAuth, db: Session = Depends(get_db)) -> SecurityStatsResponse:
    return SecurityStatsResponse(**AlertService(db).security_stats(auth))
