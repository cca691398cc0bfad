"""Pydantic schemas for security alert endpoints"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class SecurityAlertResponse(BaseModel):
    id: int
    tenant_id: int
    identity_id: int
    audit_log_id: Optional[int]
    alert_type: str
    severity: str
    message: str
    is_read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SecurityAlertListResponse(BaseModel):
    items: List[SecurityAlertResponse]
    total: int
    page: int
    per_page: int


class SecurityStatsResponse(BaseModel):
    """Attributes:
        mfa_adoption_rate: Share of active identities with MFA (0.0 - 1.0)
        failed_logins_24h: LOGIN_FAILED records in the last 24 hours
        unread_high_alerts: Unread HIGH and CRITICAL alerts
    """
    active_identities: int
    mfa_enabled_identities: int
    mfa_adoption_rate: float
    failed_logins_24h: int
    unread_high_alerts: int
