"""structlog configuration and the module logger used across rivalscope."""

import logging
import sys
from typing import Any, Optional

import structlog


def _add_logger_name(logger, method_name: str, event_dict):
    # WriteLogger has no name attribute; module loggers bind their own
    event_dict.setdefault("logger", getattr(logger, "name", "rivalscope"))
    return event_dict


def build_processors(json_logs: bool = False, include_caller_info: bool = False) -> list:
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        _add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if include_caller_info:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                parameters=[
                    structlog.processors.CallsiteParameter.FILENAME,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                    structlog.processors.CallsiteParameter.LINENO,
                ]
            )
        )

    processors += [
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.format_exc_info,
    ]

    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    return processors


def setup_logging(
    log_level: str = "INFO", json_logs: bool = False, include_caller_info: bool = False
) -> None:
    """Route stdlib and structlog output to stdout at ``log_level``."""
    level = getattr(logging, log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    structlog.configure(
        processors=build_processors(json_logs, include_caller_info),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_crawl_context(target_id: str, crawl_id: str) -> None:
    """Bind crawl-scoped identifiers to every log line of the current task."""
    structlog.contextvars.bind_contextvars(target_id=target_id, crawl_id=crawl_id)


def clear_crawl_context() -> None:
    structlog.contextvars.unbind_contextvars("target_id", "crawl_id")


class StructuredLogger:
    """Key/value logger carrying its module name and any bound context."""

    def __init__(self, name: str, context: Optional[dict[str, Any]] = None):
        self.name = name
        self.context = dict(context or {})
        self.logger = structlog.get_logger(name).bind(logger=name, **self.context)

    def debug(self, message: str, **kwargs: Any) -> None:
        self.logger.debug(message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.logger.error(message, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log at error level with the active exception's traceback."""
        self.logger.exception(message, **kwargs)

    def bind(self, **kwargs: Any) -> "StructuredLogger":
        return StructuredLogger(self.name, {**self.context, **kwargs})


def get_structured_logger(name: str) -> StructuredLogger:
    return StructuredLogger(name)
