"""
Logging for the Interactive Avatar backend.

Everything goes through loguru. Standard-library loggers (uvicorn, httpx,
websockets, livekit) are routed into it. Production emits one JSON object
per line on stderr; development emits a colored line tagged with the
session key and, once the handshake is done, the remote session id.
"""

import sys
import logging
from loguru import logger
from config import settings, Environment

_THIRD_PARTY_LEVELS = {
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "websockets": logging.WARNING,
    "livekit": logging.WARNING,
}


class InterceptHandler(logging.Handler):
    """Forward standard logging records to loguru."""

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging's own frames so loguru reports the real caller
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def _console_format(record) -> str:
    context = ""
    if "session_key" in record["extra"]:
        context = "<magenta>[{extra[session_key]}]</magenta> "
        if "remote_session_id" in record["extra"]:
            context = "<magenta>[{extra[session_key]}/{extra[remote_session_id]}]</magenta> "
    return (
        "<green>{time:HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
        + context
        + "<level>{message}</level>\n{exception}"
    )


def setup_logging():
    """Install the stderr sink and route stdlib logging into loguru."""
    logger.remove()

    if settings.environment == Environment.PRODUCTION:
        logger.add(sys.stderr, level=settings.log_level, serialize=True)
    else:
        logger.add(
            sys.stderr,
            format=_console_format,
            level=settings.log_level,
            colorize=True,
            diagnose=settings.debug,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name, level in _THIRD_PARTY_LEVELS.items():
        logging.getLogger(name).setLevel(level)

    logger.info(f"Logging configured for {settings.environment.value} environment")


def get_logger(name: str):
    return logger.bind(module=name)


class SessionLogger:
    """Logger carrying a session key in every record."""

    def __init__(self, session_key: str):
        self.session_key = session_key
        self.logger = logger.bind(session_key=session_key)

    def bind(self, **kwargs) -> "SessionLogger":
        """Return a copy bound to additional context (e.g. the remote session id)."""
        child = SessionLogger(self.session_key)
        child.logger = self.logger.bind(**kwargs)
        return child

    def debug(self, message: str, **kwargs):
        self.logger.debug(message, **kwargs)

    def info(self, message: str, **kwargs):
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs):
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs):
        self.logger.error(message, **kwargs)
