"""HTTP surface: FastAPI routers, schemas and the application factory."""

from stock_kernel.api.app import create_app

__all__ = ["create_app"]
