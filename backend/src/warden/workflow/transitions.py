"""Closed transition table of the document workflow.

The table is keyed by (effective status, action). Anything not listed is an
invalid transition; there is no runtime configuration.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import List, Mapping, Optional, Tuple

from ..rbac.permissions import PermissionId
from .status import DocumentStatus, EffectiveStatus


class WorkflowAction(str, Enum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    REVISE = "revise"
    OBSOLETE = "obsolete"

    @property
    def audit_action(self) -> str:
        return f"DMS.{self.name}"


@dataclass(frozen=True)
class Transition:
    to_status: DocumentStatus
    permission: PermissionId


TRANSITIONS: Mapping[Tuple[EffectiveStatus, WorkflowAction], Transition] = MappingProxyType({
    (EffectiveStatus.DRAFT, WorkflowAction.SUBMIT): Transition(
        DocumentStatus.SUBMITTED, PermissionId.DMS_DOCUMENT_SUBMIT
    ),
    (EffectiveStatus.SUBMITTED, WorkflowAction.APPROVE): Transition(
        DocumentStatus.APPROVED, PermissionId.DMS_DOCUMENT_APPROVE
    ),
    (EffectiveStatus.SUBMITTED, WorkflowAction.REJECT): Transition(
        DocumentStatus.REJECTED, PermissionId.DMS_DOCUMENT_APPROVE
    ),
    (EffectiveStatus.SUBMITTED, WorkflowAction.REVISE): Transition(
        DocumentStatus.DRAFT, PermissionId.DMS_DOCUMENT_EDIT
    ),
    (EffectiveStatus.REJECTED, WorkflowAction.REVISE): Transition(
        DocumentStatus.DRAFT, PermissionId.DMS_DOCUMENT_EDIT
    ),
    (EffectiveStatus.APPROVED, WorkflowAction.OBSOLETE): Transition(
        DocumentStatus.OBSOLETE, PermissionId.DMS_DOCUMENT_OBSOLETE
    ),
    # Expired documents may only be archived
    (EffectiveStatus.EXPIRED, WorkflowAction.OBSOLETE): Transition(
        DocumentStatus.OBSOLETE, PermissionId.DMS_DOCUMENT_OBSOLETE
    ),
})


def lookup_transition(
    effective_status: EffectiveStatus, action: WorkflowAction
) -> Optional[Transition]:
    """Return the transition for (effective status, action), or None

    Example:
        >>> lookup_transition(EffectiveStatus.DRAFT, WorkflowAction.SUBMIT).to_status
        <DocumentStatus.SUBMITTED: 'SUBMITTED'>
        >>> lookup_transition(EffectiveStatus.EXPIRED, WorkflowAction.APPROVE) is None
        True
    """
    return TRANSITIONS.get((EffectiveStatus(effective_status), WorkflowAction(action)))


def get_available_actions(effective_status: EffectiveStatus) -> List[WorkflowAction]:
    """Actions the table allows from a status, ignoring permissions"""
    return [action for (status, action) in TRANSITIONS if status == effective_status]
