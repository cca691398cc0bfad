"""Document workflow: statuses, transition table and engine.

The engine lives in warden.workflow.engine and is imported from there; this
package only re-exports the pure state-machine pieces so models can depend on
them without import cycles.
"""

from .status import DocumentStatus, EffectiveStatus, resolve_effective_status
from .transitions import (
    TRANSITIONS,
    Transition,
    WorkflowAction,
    get_available_actions,
    lookup_transition,
)

__all__ = [
    "DocumentStatus",
    "EffectiveStatus",
    "resolve_effective_status",
    "TRANSITIONS",
    "Transition",
    "WorkflowAction",
    "get_available_actions",
    "lookup_transition",
]
