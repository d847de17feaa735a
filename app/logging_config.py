"""
Structured logging for the router API.

Every event carries the service name, and whatever execution or plan is being
worked on is bound as context (``execution_id``, ``plan_id``) so a step's
transitions, provider calls and HTTP access lines can be joined in the log
stream. Standard-library loggers are rendered through the same chain.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, MutableMapping, Optional

import structlog

from .config import settings

SERVICE_NAME = "waypoint-router"

QUIET_LOGGERS = ("uvicorn.access", "httpcore", "httpx")


def add_service(logger: Any, method_name: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


@contextmanager
def execution_context(execution_id: Optional[str] = None, plan_id: Optional[str] = None) -> Iterator[None]:
    """Bind execution/plan ids to every log line emitted inside the block."""
    bound = {key: value for key, value in (("execution_id", execution_id), ("plan_id", plan_id)) if value}
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def _processors(json_logs: bool) -> list:
    chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        add_service,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", key="ts"),
    ]
    if json_logs:
        chain.append(structlog.processors.format_exc_info)
    return chain


def setup_logging(log_level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    """Configure structlog and route stdlib logging through it.

    JSON lines unless running at DEBUG (or ``json_logs=False``), where the
    console renderer is used instead.
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    if json_logs is None:
        json_logs = level != logging.DEBUG
    pre_chain = _processors(json_logs)

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
