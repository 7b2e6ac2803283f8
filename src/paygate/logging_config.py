"""Structured logging configuration using structlog."""

import logging
import sys
from pathlib import Path

import structlog

_SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def _formatter(renderer) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=_SHARED_PROCESSORS,
    )


def configure_logging(
    log_level: str = "info",
    json_output: bool = True,
    log_file: Path | None = None,
) -> None:
    """Route stdlib and structlog records through structlog formatters.

    Args:
        log_level: Logging level string (debug/info/warning/error).
        json_output: JSON lines on stdout when True, colored console otherwise.
        log_file: Optional file that receives every record as a JSON line,
            whatever the console format.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    structlog.configure(
        processors=_SHARED_PROCESSORS + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    console_renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=True)
    )
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(_formatter(console_renderer))
    handlers: list[logging.Handler] = [console]

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        handler.close()
    root_logger.handlers.clear()
    for handler in handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Request lines come from our middleware; webhook/RPC traffic from the clients
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def bind_request_context(trace_id: str, client_ip: str | None = None) -> None:
    """Attach the trace id (and caller IP) to every log line of this request."""
    ctx = {"trace_id": trace_id}
    if client_ip:
        ctx["client_ip"] = client_ip
    structlog.contextvars.bind_contextvars(**ctx)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
