"""Document status and the expiry-aware effective status.

State flow:
DRAFT → SUBMITTED → APPROVED → OBSOLETE
SUBMITTED → REJECTED → DRAFT (revise)
APPROVED documents past their expiry date read as EXPIRED; EXPIRED is never
written back to storage.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Union

from ..clock import utcnow, as_utc


class DocumentStatus(str, Enum):
    """Persisted document status"""
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    OBSOLETE = "OBSOLETE"


class EffectiveStatus(str, Enum):
    """Status as presented to every reader"""
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    OBSOLETE = "OBSOLETE"
    EXPIRED = "EXPIRED"  # Derived only


def resolve_effective_status(
    status: Union[DocumentStatus, str],
    expiry_date: Optional[datetime],
    now: Optional[datetime] = None,
) -> EffectiveStatus:
    """Compute the status a document is reported and guarded with.

    Args:
        status: Persisted status
        expiry_date: Optional expiry; naive values are treated as UTC
        now: Reference time (defaults to current UTC time)

    Returns:
        EXPIRED for APPROVED documents whose expiry date has passed,
        otherwise the persisted status.

    Example:
        >>> resolve_effective_status("APPROVED", datetime(2000, 1, 1))
        <EffectiveStatus.EXPIRED: 'EXPIRED'>
    """
    persisted = DocumentStatus(status)
    if persisted is DocumentStatus.APPROVED and expiry_date is not None:
        reference = as_utc(now) if now is not None else utcnow()
        if as_utc(expiry_date) < reference:
            return EffectiveStatus.EXPIRED
    return EffectiveStatus(persisted.value)
