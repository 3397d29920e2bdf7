"""Effective idle timeout resolution."""

import datetime

import structlog

from .models import ManagedContainer

logger = structlog.get_logger()

DEFAULT_IDLE_TIMEOUT = datetime.timedelta(minutes=15)


def resolve_timeout(
    container: ManagedContainer,
    timeout_label: str,
    default: datetime.timedelta = DEFAULT_IDLE_TIMEOUT,
) -> datetime.timedelta:
    """Get the idle timeout for a container.

    A positive integer number of minutes in ``timeout_label`` wins; anything
    else (absent, empty, non-numeric, zero or negative) falls back to
    ``default``. Never raises, since one bad label must not abort a sweep.
    """
    raw = container.declared_timeout(timeout_label)
    if raw is None:
        return default

    try:
        minutes = int(raw.strip())
    except ValueError:
        logger.debug(
            "idle_timeout_label_invalid", container=container.name, value=raw
        )
        return default

    if minutes <= 0:
        logger.debug(
            "idle_timeout_label_invalid", container=container.name, value=raw
        )
        return default

    return datetime.timedelta(minutes=minutes)
