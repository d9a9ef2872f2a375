"""HTTP routes for transfers, receipt completion and warehouse stock.

Every handler runs exactly one command through the application's
TransactionRunner.  Handlers are plain ``def`` so FastAPI runs the blocking
database work in its threadpool.
"""

from datetime import date, datetime
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request

from stock_kernel.api.schemas import (
    CreateTransferRequest,
    ReceiptCompletionResponse,
    ReconciliationReportResponse,
    RejectTransferRequest,
    StockEntryResponse,
    StockMovementResponse,
    TransferCompletionResponse,
    TransferItemRequest,
    TransferResponse,
    UpdateTransferItemRequest,
)
from stock_kernel.domain.values import Actor, TransferStatus
from stock_kernel.logging_config import LogContext
from stock_kernel.services.ledger_service import StockLedger
from stock_kernel.services.receipt_service import ReceiptService
from stock_kernel.services.reconciliation_service import ReconciliationService
from stock_kernel.services.transfer_service import TransferWorkflow
from stock_kernel.stores.warehouse_store import SqlWarehouseStore

transfer_router = APIRouter(prefix="/transfers", tags=["transfers"])
receipt_router = APIRouter(prefix="/receipts", tags=["receipts"])
warehouse_router = APIRouter(prefix="/warehouses", tags=["warehouses"])


def get_actor(
    x_actor_id: str = Header(default=""),
    x_actor_name: str = Header(default=""),
) -> Actor:
    if not x_actor_id.strip():
        raise HTTPException(status_code=401, detail="X-Actor-Id header is required")
    return Actor(id=x_actor_id.strip(), name=x_actor_name.strip() or x_actor_id.strip())


class _Commands:
    """Per-request access to the runner, clock and config held on app.state."""

    def __init__(self, request: Request, x_correlation_id: str = Header(default="")):
        state = request.app.state
        self.runner = state.runner
        self.clock = state.clock
        self.config = state.config
        self.correlation_id = x_correlation_id or str(uuid4())

    def run(self, name: str, operation, actor: Actor | None = None):
        with LogContext.bind(
            correlation_id=self.correlation_id,
            actor_id=actor.id if actor else None,
        ):
            return self.runner.run(operation, name=name)

    def transfers(self, session) -> TransferWorkflow:
        return TransferWorkflow(session, self.clock, self.config)


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------
@transfer_router.post("", status_code=201, response_model=TransferResponse)
def create_transfer(
    body: CreateTransferRequest,
    actor: Actor = Depends(get_actor),
    commands: _Commands = Depends(),
) -> TransferResponse:
    items = [item.to_input() for item in body.items]
    record = commands.run(
        "transfer.create",
        lambda session: commands.transfers(session).create(
            body.from_warehouse_id,
            body.to_warehouse_id,
            items,
            actor=actor,
            notes=body.notes,
            transfer_date=body.transfer_date,
        ),
        actor,
    )
    return TransferResponse.from_record(record)


@transfer_router.get("", response_model=list[TransferResponse])
def list_transfers(
    status: TransferStatus | None = Query(default=None),
    warehouse_id: UUID | None = Query(default=None),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    commands: _Commands = Depends(),
) -> list[TransferResponse]:
    records = commands.run(
        "transfer.list",
        lambda session: commands.transfers(session).list(
            status=status, warehouse_id=warehouse_id, date_from=date_from, date_to=date_to,
        ),
    )
    return [TransferResponse.from_record(r) for r in records]


@transfer_router.get("/{transfer_id}", response_model=TransferResponse)
def get_transfer(transfer_id: UUID, commands: _Commands = Depends()) -> TransferResponse:
    record = commands.run("transfer.get", lambda session: commands.transfers(session).get(transfer_id))
    return TransferResponse.from_record(record)


@transfer_router.post("/{transfer_id}/approve", response_model=TransferResponse)
def approve_transfer(
    transfer_id: UUID,
    actor: Actor = Depends(get_actor),
    commands: _Commands = Depends(),
) -> TransferResponse:
    record = commands.run(
        "transfer.approve",
        lambda session: commands.transfers(session).approve(transfer_id, actor=actor),
        actor,
    )
    return TransferResponse.from_record(record)


@transfer_router.post("/{transfer_id}/reject", response_model=TransferResponse)
def reject_transfer(
    transfer_id: UUID,
    body: RejectTransferRequest,
    actor: Actor = Depends(get_actor),
    commands: _Commands = Depends(),
) -> TransferResponse:
    record = commands.run(
        "transfer.reject",
        lambda session: commands.transfers(session).reject(transfer_id, body.reason, actor=actor),
        actor,
    )
    return TransferResponse.from_record(record)


@transfer_router.post("/{transfer_id}/dispatch", response_model=TransferResponse)
def dispatch_transfer(
    transfer_id: UUID,
    actor: Actor = Depends(get_actor),
    commands: _Commands = Depends(),
) -> TransferResponse:
    record = commands.run(
        "transfer.dispatch",
        lambda session: commands.transfers(session).dispatch(transfer_id, actor=actor),
        actor,
    )
    return TransferResponse.from_record(record)


@transfer_router.post("/{transfer_id}/complete", response_model=TransferCompletionResponse)
def complete_transfer(
    transfer_id: UUID,
    actor: Actor = Depends(get_actor),
    commands: _Commands = Depends(),
) -> TransferCompletionResponse:
    completion = commands.run(
        "transfer.complete",
        lambda session: commands.transfers(session).complete(transfer_id, actor=actor),
        actor,
    )
    return TransferCompletionResponse.from_completion(completion)


@transfer_router.put("/{transfer_id}/items/{item_id}", response_model=TransferResponse)
def update_transfer_item(
    transfer_id: UUID,
    item_id: UUID,
    body: UpdateTransferItemRequest,
    actor: Actor = Depends(get_actor),
    commands: _Commands = Depends(),
) -> TransferResponse:
    record = commands.run(
        "transfer.update_item",
        lambda session: commands.transfers(session).update_item(
            transfer_id,
            item_id,
            actor=actor,
            quantity=body.quantity,
            thickness=body.thickness,
            wood_status=body.wood_status,
            remarks=body.remarks,
        ),
        actor,
    )
    return TransferResponse.from_record(record)


@transfer_router.post("/{transfer_id}/items", status_code=201, response_model=TransferResponse)
def add_transfer_item(
    transfer_id: UUID,
    body: TransferItemRequest,
    actor: Actor = Depends(get_actor),
    commands: _Commands = Depends(),
) -> TransferResponse:
    item = body.to_input()
    record = commands.run(
        "transfer.add_item",
        lambda session: commands.transfers(session).add_item(transfer_id, item, actor=actor),
        actor,
    )
    return TransferResponse.from_record(record)


# ---------------------------------------------------------------------------
# Receipts
# ---------------------------------------------------------------------------
@receipt_router.post("/{receipt_id}/complete", response_model=ReceiptCompletionResponse)
def complete_receipt(
    receipt_id: UUID,
    actor: Actor = Depends(get_actor),
    commands: _Commands = Depends(),
) -> ReceiptCompletionResponse:
    completion = commands.run(
        "receipt.complete",
        lambda session: ReceiptService(session, commands.clock).complete_receipt(receipt_id, actor=actor),
        actor,
    )
    return ReceiptCompletionResponse.from_completion(completion)


# ---------------------------------------------------------------------------
# Warehouses
# ---------------------------------------------------------------------------
@warehouse_router.get("/{warehouse_id}/stock", response_model=list[StockEntryResponse])
def warehouse_stock(warehouse_id: UUID, commands: _Commands = Depends()) -> list[StockEntryResponse]:
    def _read(session):
        SqlWarehouseStore(session).get(warehouse_id)
        return StockLedger(session, commands.clock).list_warehouse_stock(warehouse_id)

    return [StockEntryResponse.from_record(r) for r in commands.run("warehouse.stock", _read)]


@warehouse_router.get("/{warehouse_id}/movements", response_model=list[StockMovementResponse])
def warehouse_movements(
    warehouse_id: UUID,
    wood_type_id: UUID | None = Query(default=None),
    thickness: str | None = Query(default=None),
    reference_type: str | None = Query(default=None),
    occurred_from: datetime | None = Query(default=None),
    occurred_to: datetime | None = Query(default=None),
    commands: _Commands = Depends(),
) -> list[StockMovementResponse]:
    records = commands.run(
        "warehouse.movements",
        lambda session: StockLedger(session, commands.clock).list_movements(
            warehouse_id,
            wood_type_id=wood_type_id,
            thickness=thickness,
            reference_type=reference_type,
            occurred_from=occurred_from,
            occurred_to=occurred_to,
        ),
    )
    return [StockMovementResponse.from_record(r) for r in records]


@warehouse_router.get("/{warehouse_id}/reconciliation", response_model=ReconciliationReportResponse)
def warehouse_reconciliation(
    warehouse_id: UUID,
    wood_type_id: UUID | None = Query(default=None),
    commands: _Commands = Depends(),
) -> ReconciliationReportResponse:
    report = commands.run(
        "warehouse.reconciliation",
        lambda session: ReconciliationService(session, commands.clock).reconcile(warehouse_id, wood_type_id),
    )
    return ReconciliationReportResponse.from_report(report)
