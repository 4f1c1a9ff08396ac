"""Deadline wrapper for reads against external systems of record."""

from typing import Awaitable, Optional, TypeVar

import anyio
from sqlalchemy.exc import SQLAlchemyError

from appointment_engine.config import settings
from appointment_engine.errors import ValidationUnavailable
from appointment_engine.utils.logging import get_logger

logger = get_logger("engine.lookups")

T = TypeVar("T")


async def bounded_lookup(
    source: str,
    awaitable: Awaitable[T],
    timeout: Optional[float] = None,
) -> T:
    """Await a lookup, turning timeouts and store errors into ValidationUnavailable."""
    limit = settings.lookup_timeout_seconds if timeout is None else timeout
    try:
        with anyio.fail_after(limit):
            return await awaitable
    except TimeoutError:
        logger.warning("lookup_timed_out", source=source, timeout_seconds=limit)
        raise ValidationUnavailable(source, f"{source} lookup timed out after {limit}s")
    except SQLAlchemyError as e:
        logger.error("lookup_failed", source=source, error=str(e))
        raise ValidationUnavailable(source, f"{source} lookup failed")
