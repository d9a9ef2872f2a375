"""
Stock kernel configuration.

Defaults suit a local SQLite run.  Production values come from a YAML file
plus environment overrides:

    config = load_config("stock_kernel.yaml")

Environment variables win over the file:
    DATABASE_URL                        -> database_url
    STOCK_KERNEL_<FIELD> (upper case)   -> any other field
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from stock_kernel.logging_config import get_logger

logger = get_logger("config")

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

ENV_PREFIX = "STOCK_KERNEL_"


@dataclass
class StockKernelConfig:
    """Runtime settings for the engine, the transaction runner and numbering."""

    database_url: str = "sqlite://"
    echo_sql: bool = False
    pool_size: int = 20

    # Concurrency
    lock_timeout_ms: int = 5000
    max_attempts: int = 3
    retry_backoff_seconds: float = 0.05

    # Transfer numbering: UD-TRF-00001
    transfer_number_prefix: str = "UD-TRF-"
    transfer_number_width: int = 5

    log_level: str = "INFO"

    def __post_init__(self):
        if not self.database_url:
            raise ValueError("database_url must not be empty")
        if self.pool_size <= 0:
            raise ValueError("pool_size must be positive")
        if self.lock_timeout_ms <= 0:
            raise ValueError("lock_timeout_ms must be positive")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds cannot be negative")
        if not self.transfer_number_prefix:
            raise ValueError("transfer_number_prefix must not be empty")
        if self.transfer_number_width < 1:
            raise ValueError("transfer_number_width must be at least 1")
        self.log_level = str(self.log_level).upper()
        if self.log_level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {sorted(VALID_LOG_LEVELS)}, got '{self.log_level}'"
            )

    def format_transfer_number(self, value: int) -> str:
        return f"{self.transfer_number_prefix}{value:0{self.transfer_number_width}d}"


def _coerce(raw: str, target: Any) -> Any:
    if isinstance(target, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(target, int):
        return int(raw)
    if isinstance(target, float):
        return float(raw)
    return raw


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_config(
    path: str | Path | None = None,
    environ: dict[str, str] | None = None,
) -> StockKernelConfig:
    """
    Build a StockKernelConfig from an optional YAML file and the environment.

    Unknown keys in the file raise ValueError.
    """
    environ = os.environ if environ is None else environ
    defaults = StockKernelConfig()
    values: dict[str, Any] = {}

    if path is not None:
        data = load_yaml_file(Path(path))
        # Accept either a flat mapping or one nested under "stock_kernel"
        data = data.get("stock_kernel", data)
        known = {f.name for f in fields(StockKernelConfig)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {sorted(unknown)}")
        values.update(data)

    for f in fields(StockKernelConfig):
        env_name = f"{ENV_PREFIX}{f.name.upper()}"
        if env_name in environ:
            values[f.name] = _coerce(environ[env_name], getattr(defaults, f.name))

    if "DATABASE_URL" in environ and f"{ENV_PREFIX}DATABASE_URL" not in environ:
        values["database_url"] = environ["DATABASE_URL"]

    config = StockKernelConfig(**values)
    logger.info(
        "config_loaded",
        extra={
            "source": str(path) if path else "defaults",
            "dialect": config.database_url.split(":", 1)[0],
            "lock_timeout_ms": config.lock_timeout_ms,
            "max_attempts": config.max_attempts,
        },
    )
    return config
