"""
Runtime configuration for sqltutor.

Collects the history directory, Postgres connection settings and
transcript policy into one configuration that flows from the CLI into
the web server, store and query executor.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

from sqltutor.transcript import DEFAULT_DATABASE, PAGE_SIZE


@dataclass
class RuntimeConfig:
    """
    Runtime configuration for the store and query executor.

    Attributes:
        history_dir: Directory holding one markdown document per session
        default_database: Database for new sessions and for listing databases
        pg_host: Postgres host
        pg_port: Postgres port
        pg_user: Postgres user
        pg_password: Postgres password
        page_size: Entries per page before a query opens a new page
        query_timeout: Seconds a single statement may run
        verbose: Log debug information
    """

    history_dir: Path = field(default_factory=lambda: Path("conversations"))
    default_database: str = DEFAULT_DATABASE

    # Postgres settings
    pg_host: str = "localhost"
    pg_port: int = 5432
    pg_user: str = "admin"
    pg_password: str = "password"

    # Transcript policy
    page_size: int = PAGE_SIZE
    query_timeout: float = 30.0

    # Debug
    verbose: bool = False

    def __post_init__(self):
        self.history_dir = Path(self.history_dir).expanduser()
        if self.page_size < 1:
            raise ValueError(f"page_size must be at least 1, got {self.page_size}")
        if self.query_timeout <= 0:
            raise ValueError(f"query_timeout must be positive, got {self.query_timeout}")


def get_runtime_config(
    history_dir: str | None = None,
    default_database: str | None = None,
    verbose: bool = False,
) -> RuntimeConfig:
    """
    Create a runtime configuration from the environment.

    Explicit arguments win over environment variables.

    Args:
        history_dir: Override SQLTUTOR_HISTORY_DIR
        default_database: Override POSTGRES_DB
        verbose: Enable verbose logging

    Returns:
        Configured RuntimeConfig instance

    Raises:
        ValueError: If a numeric environment variable can't be parsed
    """
    env = os.environ
    config = RuntimeConfig(
        history_dir=Path(env.get("SQLTUTOR_HISTORY_DIR", "conversations")),
        default_database=env.get("POSTGRES_DB", DEFAULT_DATABASE),
        pg_host=env.get("POSTGRES_HOST", "localhost"),
        pg_port=_env_number("POSTGRES_PORT", int, 5432),
        pg_user=env.get("POSTGRES_USER", "admin"),
        pg_password=env.get("POSTGRES_PASSWORD", "password"),
        page_size=_env_number("SQLTUTOR_PAGE_SIZE", int, PAGE_SIZE),
        query_timeout=_env_number("SQLTUTOR_QUERY_TIMEOUT", float, 30.0),
        verbose=verbose,
    )

    if history_dir:
        config.history_dir = Path(history_dir).expanduser()
    if default_database:
        config.default_database = default_database

    return config


def _env_number(name: str, kind: type, default: int | float):
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return kind(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def setup_logging(verbose: bool = False) -> None:
    """Send sqltutor logs to stderr (DEBUG when verbose)."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


# Global config instance (can be set by CLI/web server)
_global_config: RuntimeConfig | None = None


def set_global_config(config: RuntimeConfig) -> None:
    """Set the global runtime configuration."""
    global _global_config
    _global_config = config


def get_global_config() -> RuntimeConfig:
    """Get the global runtime configuration, creating it from the environment if needed."""
    global _global_config
    if _global_config is None:
        _global_config = get_runtime_config()
    return _global_config
