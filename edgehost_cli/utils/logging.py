"""structlog + Logfire setup shared by every edgehostctl command."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

import logfire
import structlog
import structlog.contextvars

SERVICE_NAME = "edgehostctl"

_logfire_ready = False


def _ensure_logfire() -> None:
    global _logfire_ready
    if _logfire_ready:
        return
    logfire.configure(service_name=SERVICE_NAME, send_to_logfire="if-token-present", console=False)
    logfire.instrument_pydantic()
    logfire.instrument_httpx()
    _logfire_ready = True


def _renderer(verbose: bool) -> structlog.types.Processor:
    if verbose:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.KeyValueRenderer(
        key_order=["timestamp", "level", "logger", "event", "project", "host", "phase"],
        drop_missing=True,
    )


def configure_logging(verbose: bool = False) -> None:
    """Route structlog events through stdlib logging and Logfire.

    Verbose mode switches to the console renderer and lets the httpx request
    log through; otherwise events are rendered as ``key=value`` lines.
    """

    _ensure_logfire()

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, handlers=[handler], force=True)
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            logfire.StructlogProcessor(),
            _renderer(verbose),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


@contextmanager
def inventory_context(project: str, api_url: str) -> Iterator[None]:
    """Attach the target project and endpoint to every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(project=project, api_url=api_url):
        with logfire.span("inventory {project}", project=project):
            yield


__all__ = ["SERVICE_NAME", "configure_logging", "inventory_context"]
