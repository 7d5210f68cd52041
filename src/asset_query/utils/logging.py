import structlog
import logging
import inspect
import json
from typing import Any
from asset_query.config import get_settings

# Module-level flag to prevent multiple configuration
_logging_configured = False

# Project package prefix used to shorten logger names
_PACKAGE_PREFIX = "asset_query."

# Fields rendered in the dev header line instead of key=value pairs
_DEV_HEADER_FIELDS = {'timestamp', 'level', 'module', 'event', 'trace_id', 'logger'}


def _add_module_info(logger: Any, method_name: str, event_dict: structlog.types.EventDict) -> structlog.types.EventDict:
    """
    Add a short 'module' field derived from the logger name.

    Project loggers keep their last two dotted parts
    ("asset_query.services.query_service" -> "services.query_service").
    """
    logger_name = event_dict.get('logger', 'unknown')

    if logger_name.startswith(_PACKAGE_PREFIX):
        module_parts = logger_name.split('.')
        event_dict['module'] = '.'.join(module_parts[-2:])
    else:
        event_dict['module'] = logger_name

    return event_dict


def _truncate_long_values(logger: Any, method_name: str, event_dict: structlog.types.EventDict) -> structlog.types.EventDict:
    """
    Clip very long string fields (model replies, SQL) so one log record
    stays readable. Full text is only logged at DEBUG.
    """
    limit = 2000 if method_name == "debug" else 500
    for key, value in event_dict.items():
        if key != 'event' and isinstance(value, str) and len(value) > limit:
            event_dict[key] = f"{value[:limit]}... [{len(value) - limit} more chars]"
    return event_dict


def _pretty_json_renderer(logger: Any, method_name: str, event_dict: structlog.types.EventDict) -> str:
    """Render every record as indented JSON."""
    return json.dumps(event_dict, indent=2, ensure_ascii=False, default=str)


def _dev_formatter(logger: Any, method_name: str, event_dict: structlog.types.EventDict) -> str:
    """
    Single-line human readable formatter for local development.

    Selected with APP__LOG_FORMAT=console.
    """
    timestamp = event_dict.get('timestamp', '')
    level = event_dict.get('level', '').upper()
    module = event_dict.get('module', '')
    event = event_dict.get('event', '')
    trace_id = event_dict.get('trace_id', '')

    colors = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    reset = '\033[0m'
    color = colors.get(level, '')

    main_msg = f"{timestamp} {color}[{level}]{reset} {module}: {event}"
    if trace_id:
        main_msg += f" (trace: {trace_id[:8]})"

    other_fields = [
        f"{key}={value}" for key, value in event_dict.items()
        if key not in _DEV_HEADER_FIELDS
    ]
    if other_fields:
        main_msg += f" | {', '.join(other_fields)}"

    return main_msg


def configure_logging() -> None:
    """Configure structured logging for the application."""

    global _logging_configured

    if _logging_configured:
        return
    _logging_configured = True

    settings = get_settings()
    level_name = settings.app.log_level.value
    renderer = _dev_formatter if settings.app.log_format == "console" else _pretty_json_renderer

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level_name),
        handlers=[logging.StreamHandler()]
    )

    # Third-party HTTP clients are noisy at INFO during token streaming
    for noisy in ("httpx", "httpcore", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,  # session_id bound per request
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _add_module_info,
            _truncate_long_values,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name, typically __name__ to get the module name

    Returns:
        Configured structlog logger

    Usage:
        logger = get_logger(__name__)
        logger.info("Generation attempt started", attempt=1, trace_id="abc-123")
    """
    return structlog.get_logger(name)


def get_module_logger() -> structlog.stdlib.BoundLogger:
    """
    Get a logger for the calling module automatically.

    Falls back to 'unknown' module name if frame inspection fails.
    """
    module_name = 'unknown'
    frame = None

    try:
        frame = inspect.currentframe()
        if frame is not None and frame.f_back is not None:
            module_name = frame.f_back.f_globals.get('__name__', 'unknown')
    except (AttributeError, RuntimeError):
        # Frame inspection is unavailable in some interpreters
        pass
    finally:
        if frame is not None:
            del frame

    return get_logger(module_name)
