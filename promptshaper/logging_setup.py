import logging
import sys
import structlog

PACKAGE_LOGGER_NAME = "promptshaper"

# applied to every structlog event before it is handed to the stdlib handler.
_SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.dev.set_exc_info,
    structlog.processors.format_exc_info,
]

def _select_renderer(json_logs: bool):
    if json_logs:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

def _install_handler(formatter: logging.Formatter, level: int):
    # one stderr handler on the package logger; reconfiguring replaces it.
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    package_logger = logging.getLogger(PACKAGE_LOGGER_NAME)
    package_logger.handlers.clear()
    package_logger.addHandler(handler)
    package_logger.setLevel(level)

def configure_logging(log_level_str: str = "warning", json_logs: bool = False):
    """
    Routes structlog through stdlib logging for the promptshaper package.

    `log_level_str` is a stdlib level name ("debug", "info", ...); unknown
    names fall back to warning. With `json_logs` each event is one JSON line.
    """
    level = getattr(logging, log_level_str.upper(), logging.WARNING)
    structlog.configure(
        processors=_SHARED_PROCESSORS + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=_select_renderer(json_logs),
        foreign_pre_chain=[structlog.stdlib.add_log_level],
    )
    _install_handler(formatter, level)
    structlog.get_logger(__name__).info("logging_configured", level=log_level_str, json_logs=json_logs)
