"""
Transfer and receipt state machines.

Transitions are a closed table.  ``find_transition`` is the only way the
services decide whether an action is legal; anything not in the table
raises ``InvalidStateTransitionError`` before the ledger is touched.
"""

from __future__ import annotations

from dataclasses import dataclass

from stock_kernel.domain.values import ReceiptStatus, TransferStatus
from stock_kernel.exceptions import InvalidStateTransitionError
from stock_kernel.logging_config import get_logger

logger = get_logger("domain.workflow")


@dataclass(frozen=True)
class Guard:
    """A condition checked by the service before a transition fires."""
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition.  ``moves_stock=True`` marks a ledger-applying step."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    moves_stock: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(f"{self.name}: initial state {self.initial_state} not in states")
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(f"{self.name}: transition {t.action} uses unknown state")

    def actions_from(self, state: str) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == state)


def find_transition(
    workflow: Workflow,
    from_state: str,
    action: str,
    *,
    entity_type: str,
    entity_id,
) -> Transition:
    """Return the transition for (from_state, action) or raise InvalidStateTransitionError."""
    for transition in workflow.transitions:
        if transition.from_state == from_state and transition.action == action:
            return transition
    logger.info(
        "transition_rejected",
        extra={
            "workflow": workflow.name,
            "from_state": from_state,
            "action": action,
            "entity_id": str(entity_id),
        },
    )
    raise InvalidStateTransitionError(entity_type, entity_id, from_state, action)


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

SOURCE_STOCK_AVAILABLE = Guard(
    name="source_stock_available",
    description="Controlled source warehouse holds every item quantity",
)

MEASUREMENTS_RECORDED = Guard(
    name="measurements_recorded",
    description="Lot has at least one measured piece",
)


# -----------------------------------------------------------------------------
# Transfer Workflow
# -----------------------------------------------------------------------------

_T = TransferStatus

TRANSFER_WORKFLOW = Workflow(
    name="wood_transfer",
    description="Movement of pieces between two warehouses with approval",
    initial_state=_T.PENDING.value,
    states=tuple(s.value for s in _T),
    transitions=(
        Transition(_T.PENDING.value, _T.APPROVED.value, action="approve"),
        Transition(_T.PENDING.value, _T.REJECTED.value, action="reject"),
        Transition(_T.APPROVED.value, _T.IN_TRANSIT.value, action="dispatch"),
        Transition(
            _T.IN_TRANSIT.value, _T.COMPLETED.value, action="complete",
            guard=SOURCE_STOCK_AVAILABLE, moves_stock=True,
        ),
        # direct receive without a dispatch step
        Transition(
            _T.APPROVED.value, _T.COMPLETED.value, action="complete",
            guard=SOURCE_STOCK_AVAILABLE, moves_stock=True,
        ),
    ),
    terminal_states=(_T.COMPLETED.value, _T.REJECTED.value),
)


# -----------------------------------------------------------------------------
# Receipt Workflow
# -----------------------------------------------------------------------------

_R = ReceiptStatus

RECEIPT_WORKFLOW = Workflow(
    name="wood_receipt",
    description="Lot intake from creation to stock credit",
    initial_state=_R.CREATED.value,
    states=tuple(s.value for s in _R),
    transitions=(
        Transition(_R.CREATED.value, _R.PENDING.value, action="record_measurements"),
        Transition(_R.PENDING.value, _R.PENDING.value, action="record_measurements"),
        Transition(_R.PENDING.value, _R.PENDING_APPROVAL.value, action="submit_for_approval"),
        Transition(_R.PENDING_APPROVAL.value, _R.PROCESSING.value, action="approve"),
        Transition(
            _R.PENDING.value, _R.COMPLETED.value, action="complete",
            guard=MEASUREMENTS_RECORDED, moves_stock=True,
        ),
        Transition(
            _R.PROCESSING.value, _R.COMPLETED.value, action="complete",
            guard=MEASUREMENTS_RECORDED, moves_stock=True,
        ),
        Transition(_R.CREATED.value, _R.CANCELLED.value, action="cancel"),
        Transition(_R.PENDING.value, _R.CANCELLED.value, action="cancel"),
        Transition(_R.PENDING_APPROVAL.value, _R.CANCELLED.value, action="cancel"),
        Transition(_R.PROCESSING.value, _R.CANCELLED.value, action="cancel"),
    ),
    terminal_states=(_R.COMPLETED.value, _R.CANCELLED.value),
)

logger.debug(
    "workflows_registered",
    extra={
        "workflows": [TRANSFER_WORKFLOW.name, RECEIPT_WORKFLOW.name],
        "transition_count": len(TRANSFER_WORKFLOW.transitions) + len(RECEIPT_WORKFLOW.transitions),
    },
)
