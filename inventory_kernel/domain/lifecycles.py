"""
Lifecycle definitions for lots, transfers and package custody.

Pure data: the services look transitions up here and refuse anything not
declared.  Status values are the string values of the model enums.
"""

from inventory_kernel.domain.workflow import Transition, Workflow
from inventory_kernel.logging_config import get_logger

logger = get_logger("domain.lifecycles")


# -----------------------------------------------------------------------------
# Transfer Workflow
# -----------------------------------------------------------------------------

TRANSFER_WORKFLOW = Workflow(
    name="transfer",
    description="Movement of packages between two locations",
    initial_state="pending",
    states=(
        "pending",
        "approved",
        "in_progress",
        "in_transit",
        "delivered",
        "completed",
        "cancelled",
    ),
    transitions=(
        Transition("pending", "approved", action="approve"),
        Transition("approved", "in_progress", action="start"),
        Transition("in_progress", "in_transit", action="mark_in_transit"),
        Transition("in_transit", "delivered", action="deliver"),
        Transition("delivered", "completed", action="complete"),
        Transition("pending", "cancelled", action="cancel"),
        Transition("approved", "cancelled", action="cancel"),
        Transition("in_progress", "cancelled", action="cancel"),
        Transition("in_transit", "cancelled", action="cancel"),
    ),
    terminal_states=("completed", "cancelled"),
)

# GPS points are accepted only while the carrier is moving.
GPS_TRACKING_STATES: frozenset[str] = frozenset({"in_progress", "in_transit"})

TRANSFER_ACTIONS: tuple[str, ...] = tuple(
    dict.fromkeys(t.action for t in TRANSFER_WORKFLOW.transitions)
)


# -----------------------------------------------------------------------------
# Lot Workflow
# -----------------------------------------------------------------------------

LOT_WORKFLOW = Workflow(
    name="lot",
    description="Lot lifecycle after intake",
    initial_state="active",
    states=("active", "depleted", "expired", "quarantined"),
    transitions=(
        Transition("active", "depleted", action="deplete"),
        Transition("active", "expired", action="expire"),
        Transition("active", "quarantined", action="quarantine"),
    ),
    terminal_states=("depleted", "expired", "quarantined"),
)


def lot_transition(from_status: str, to_status: str) -> Transition | None:
    for t in LOT_WORKFLOW.transitions:
        if t.from_state == from_status and t.to_state == to_status:
            return t
    return None


# -----------------------------------------------------------------------------
# Custody scan effects
# -----------------------------------------------------------------------------

# Package status a scan moves the package to.  None: status unchanged.
SCAN_STATUS_EFFECTS: dict[str, str | None] = {
    "received": "available",
    "packaged": "available",
    "transfer_pickup": None,
    "transfer_delivery": None,
    "sold": "sold",
    "returned": "returned",
    "damaged": "damaged",
}

# Statuses a status-changing scan may start from.  Packages held by a
# transfer (reserved, in_transit) change status only through the transfer.
SCAN_ALLOWED_FROM: dict[str, frozenset[str]] = {
    "received": frozenset({"available", "returned", "delivered"}),
    "packaged": frozenset({"available"}),
    "sold": frozenset({"available", "delivered", "returned"}),
    "returned": frozenset({"sold", "delivered", "available"}),
    "damaged": frozenset({"available", "delivered", "returned"}),
}


def scan_target_status(scan_type: str, current_status: str) -> str | None:
    """
    New package status for a scan, or None when the scan is illegal.

    Scans without a status effect always succeed and keep the status.
    """
    effect = SCAN_STATUS_EFFECTS[scan_type]
    if effect is None:
        return current_status
    if current_status not in SCAN_ALLOWED_FROM[scan_type]:
        return None
    return effect


logger.debug(
    "lifecycles_registered",
    extra={
        "workflows": [TRANSFER_WORKFLOW.name, LOT_WORKFLOW.name],
        "transfer_transition_count": len(TRANSFER_WORKFLOW.transitions),
        "scan_types": sorted(SCAN_STATUS_EFFECTS),
    },
)
