"""
Runtime configuration for transferlog.

Values come from the environment (a local .env file is honoured). The chunk
and window sizes are tuned against what public RPC providers accept; override
them per provider rather than editing the defaults.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .domain.errors import ConfigError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.replace("_", ""))
    except ValueError as e:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from e


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from e


@dataclass(frozen=True)
class Settings:
    """Tunables for the retrieval pipeline and the RPC adapter."""

    rpc_url: str = "http://localhost:8545"
    timeout_s: int = 20
    max_connections: int = 64
    initial_chunk: int = 10_000         # blocks per eth_getLogs call to start with
    min_chunk: int = 100                # floor width; never shrink below this
    default_window: int = 100_000       # get_logs lookback when no from_block is given
    timestamp_concurrency: int = 16
    poll_interval_s: float = 4.0
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        self._validate()

    def _validate(self) -> None:
        for name in ("timeout_s", "max_connections", "initial_chunk", "min_chunk",
                     "default_window", "timestamp_concurrency"):
            if getattr(self, name) < 1:
                raise ConfigError(f"{name} must be >= 1, got {getattr(self, name)}")
        if self.min_chunk > self.initial_chunk:
            raise ConfigError(
                f"min_chunk ({self.min_chunk}) must be <= initial_chunk ({self.initial_chunk})"
            )
        if self.poll_interval_s <= 0:
            raise ConfigError(f"poll_interval_s must be > 0, got {self.poll_interval_s}")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError(f"Invalid log level: {self.log_level}")

    @classmethod
    def from_env(cls, *, dotenv_path: Optional[str] = None) -> "Settings":
        """Build settings from TRANSFERLOG_* environment variables."""
        load_dotenv(dotenv_path)
        return cls(
            rpc_url=os.getenv("TRANSFERLOG_RPC_URL", cls.rpc_url),
            timeout_s=_env_int("TRANSFERLOG_TIMEOUT_S", cls.timeout_s),
            max_connections=_env_int("TRANSFERLOG_MAX_CONNECTIONS", cls.max_connections),
            initial_chunk=_env_int("TRANSFERLOG_INITIAL_CHUNK", cls.initial_chunk),
            min_chunk=_env_int("TRANSFERLOG_MIN_CHUNK", cls.min_chunk),
            default_window=_env_int("TRANSFERLOG_DEFAULT_WINDOW", cls.default_window),
            timestamp_concurrency=_env_int("TRANSFERLOG_TIMESTAMP_CONCURRENCY", cls.timestamp_concurrency),
            poll_interval_s=_env_float("TRANSFERLOG_POLL_INTERVAL_S", cls.poll_interval_s),
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
        )


def configure_logging(level: str = "INFO", handler: Optional[logging.Handler] = None) -> None:
    """Setup root logging once for scripts and the CLI."""
    if handler is not None:
        logging.basicConfig(level=level.upper(), format="%(message)s", handlers=[handler], force=True)
    else:
        logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
