import structlog
import logging
import sys
from typing import Any


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structured logging for the relay"""

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer() if sys.stdout.isatty() else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = None) -> structlog.BoundLogger:
    """Get a configured logger instance"""
    return structlog.get_logger(name)


def mask_email(email: str) -> str:
    """Mask the local part of an address: visitor@domain.com -> v*****r@domain.com"""
    if not email or "@" not in email:
        return "*" * len(email or "")
    local, domain = email.split("@", 1)
    if len(local) > 2:
        masked_local = local[0] + "*" * (len(local) - 2) + local[-1]
    else:
        masked_local = "*" * len(local)
    return f"{masked_local}@{domain}"


def log_room_event(event_type: str, room: str, **kwargs: Any) -> None:
    """Log a room protocol event with a consistent structure"""
    logger = get_logger("room_events")
    if "email" in kwargs and kwargs["email"]:
        kwargs["email"] = mask_email(kwargs["email"])
    logger.info("Room event", event_type=event_type, room=room, **kwargs)
