import logging
import sys

import structlog

from tooldex.errors import ConfigurationError

# third-party loggers that chatter at INFO on every embedding or sqlite call
_NOISY_LOGGERS = ("LiteLLM", "httpx", "aiosqlite")


def _level_number(level: str) -> int:
    number = logging.getLevelNamesMapping().get(level.upper())
    if number is None:
        raise ConfigurationError(f"Unknown log level: {level}")
    return number


def configure_logging(level: str = "INFO", colors: bool | None = None) -> None:
    """Route structlog events at or above `level` to stderr.

    Colors default to on only when stderr is a terminal, so CLI output piped
    to a file stays plain.
    """
    if colors is None:
        colors = sys.stderr.isatty()
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(colors=colors),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_level_number(level)),
        logger_factory=structlog.WriteLoggerFactory(file=sys.stderr),
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None):
    return structlog.get_logger(name or "tooldex")
