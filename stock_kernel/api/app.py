"""FastAPI application factory for the stock kernel."""

from collections.abc import Callable

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from stock_kernel.api.routes import receipt_router, transfer_router, warehouse_router
from stock_kernel.config import StockKernelConfig
from stock_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from stock_kernel.db.immutability import register_immutability_listeners
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.exceptions import (
    ConcurrencyConflictError,
    ImmutabilityViolationError,
    InsufficientStockError,
    NotFoundError,
    StockKernelError,
    ValidationError,
    WorkflowError,
)
from stock_kernel.logging_config import configure_logging, get_logger
from stock_kernel.services.transaction_runner import TransactionRunner

logger = get_logger("api")


def status_for(exc: StockKernelError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, (InsufficientStockError, WorkflowError, ImmutabilityViolationError)):
        return 409
    if isinstance(exc, ConcurrencyConflictError):
        return 503
    return 400


async def stock_kernel_error_handler(request: Request, exc: StockKernelError) -> JSONResponse:
    status_code = status_for(exc)
    headers = None
    if isinstance(exc, ConcurrencyConflictError):
        headers = {"Retry-After": str(exc.retry_after)}
    log = logger.warning if status_code >= 500 else logger.info
    log(
        "request_failed",
        extra={"path": request.url.path, "status_code": status_code, "error_code": exc.code},
    )
    return JSONResponse(status_code=status_code, content=jsonable_encoder(exc.to_dict()), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request body or parameters are invalid",
            "errors": jsonable_encoder(exc.errors()),
        },
    )


def create_app(
    config: StockKernelConfig | None = None,
    *,
    session_factory: Callable[[], Session] | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    """
    Build the API.

    With no ``session_factory`` the module-level engine is initialised from
    ``config.database_url`` and its tables are created.
    """
    config = config or StockKernelConfig()
    configure_logging(level=config.log_level)
    register_immutability_listeners()

    if session_factory is None:
        engine = init_engine_from_url(
            config.database_url,
            echo=config.echo_sql,
            pool_size=config.pool_size,
            lock_timeout_ms=config.lock_timeout_ms,
        )
        create_tables(engine)
        session_factory = get_session_factory()

    app = FastAPI(
        title="Wood Stock Ledger",
        description="Warehouse stock ledger with inter-warehouse transfers and lot receipts",
    )
    app.state.config = config
    app.state.clock = clock or SystemClock()
    app.state.runner = TransactionRunner(
        session_factory,
        max_attempts=config.max_attempts,
        backoff_seconds=config.retry_backoff_seconds,
    )

    app.add_exception_handler(StockKernelError, stock_kernel_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(transfer_router)
    app.include_router(receipt_router)
    app.include_router(warehouse_router)

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app
