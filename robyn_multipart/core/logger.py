import logging
from dataclasses import dataclass, field
from enum import StrEnum

import orjson
import structlog
from asgi_correlation_id import correlation_id
from beartype import beartype

from robyn_multipart.core.settings import settings

MAX_EVENT_LENGTH = 80
SIZE_KEYS = frozenset({"size", "limit", "bytes_received"})


class LoggerError(Exception):
    """Raised when a log call carries invalid extra kwargs."""


class LogIcon(StrEnum):
    """Icons prefixed to dev-mode log lines, grouped by upload stage."""

    DEFAULT = "📋"

    # Lifecycle
    START = "🚀"
    REGISTER = "🔌"
    SUCCESS = "✅"

    # Body and parts
    UPLOAD = "📤"
    PARSER = "⚙️"
    FILE = "📄"
    DISK = "💾"
    DISCARD = "🗑️"

    # Failures
    WARNING = "⚠️"
    ERROR = "❌"
    FORBIDDEN = "🚫"


@dataclass
class LoggerConfig:
    debug: bool = field(default_factory=lambda: settings.DEBUG)
    level: str = field(default_factory=lambda: settings.LOG_LEVEL)


def human_size(num_bytes: int) -> str:
    """Format a byte count with binary units, e.g. ``1.5 MiB``."""
    value = float(num_bytes)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if value < 1024 or unit == "GiB":
            return f"{int(value)} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{num_bytes} B"


def add_correlation_id(logger, method_name: str, event_dict: dict) -> dict:
    if request_id := correlation_id.get():
        event_dict["correlation_id"] = request_id
    return event_dict


class UploadEventProcessor:
    """
    Normalize upload log events.

    - Event messages are uppercased and cut to ``MAX_EVENT_LENGTH`` characters.
    - ``icon`` must be a ``LogIcon`` member and is only rendered in debug mode.
    - In debug mode, byte counts under ``SIZE_KEYS`` are shown in binary units.
    """

    def __init__(self, debug: bool) -> None:
        self.debug = debug

    @beartype
    def __call__(self, logger, name: str, event_dict: dict) -> dict:
        try:
            icon = LogIcon(event_dict.pop("icon", LogIcon.DEFAULT))
        except ValueError as err:
            raise LoggerError(f"Unknown log icon {err}, use a LogIcon member") from err

        event = str(event_dict.get("event", ""))[:MAX_EVENT_LENGTH].upper()
        if self.debug:
            event = f"{icon.value} {event}"
            for key in SIZE_KEYS & event_dict.keys():
                if isinstance(event_dict[key], int):
                    event_dict[key] = human_size(event_dict[key])

        event_dict["event"] = event
        return event_dict


def dev_renderer(logger, name: str, event_dict: dict) -> str:
    """Render ``time | LEVEL | EVENT | key=value ... | file:line``."""
    timestamp = event_dict.pop("timestamp", "")
    level = str(event_dict.pop("level", "info")).upper()
    event = event_dict.pop("event", "")
    filename = event_dict.pop("filename", "")
    lineno = event_dict.pop("lineno", "")

    extras = " ".join(f"{key}={value}" for key, value in event_dict.items())
    location = f"{filename}:{lineno}" if filename else ""
    return " | ".join(part for part in (timestamp, level, event, extras, location) if part)


def setup_logging(config: LoggerConfig) -> None:
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
            ],
            additional_ignores=["logger"],
        ),
        UploadEventProcessor(debug=config.debug),
    ]

    if config.debug:
        # Dev output is text, JSON output is the bytes orjson produces.
        processors = [*shared_processors, dev_renderer]
        level = logging.DEBUG
        logger_factory = structlog.PrintLoggerFactory()
    else:
        processors = [
            *shared_processors,
            add_correlation_id,
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(serializer=orjson.dumps),
        ]
        level = logging.getLevelNamesMapping().get(config.level.upper(), logging.INFO)
        logger_factory = structlog.BytesLoggerFactory()

    structlog.configure(
        processors=processors,
        logger_factory=logger_factory,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )


setup_logging(LoggerConfig())

logger = structlog.get_logger()
