"""Structured logging configuration using structlog with async context propagation."""

import logging
import os

import structlog


def setup_logging(
    log_level: str = "INFO",
    log_format: str | None = None,
    log_file: str | None = None,
) -> None:
    """Configure structlog with JSON or console rendering.

    Uses structlog.contextvars so that values bound inside a scan round or a
    monitor consumer task stay attached to that task only.

    Args (each falls back to the environment variable of the same name):
    - log_format (LOG_FORMAT): "json" for machine-readable output, "console" (default) otherwise
    - log_file (LOG_FILE): optional path; when set, records are also appended to that file
    """
    log_format = (log_format or os.environ.get("LOG_FORMAT", "console")).lower()
    log_file = (log_file or os.environ.get("LOG_FILE", "")).strip()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    if log_file:
        # Files always get JSON lines, regardless of the console renderer
        file_formatter = structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer(),
            ],
        )
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # ccxt is chatty at DEBUG; keep it at WARNING unless explicitly asked for
    logging.getLogger("ccxt").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger with the given name."""
    return structlog.get_logger(name)
