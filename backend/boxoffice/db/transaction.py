"""
Unit-of-work runner used by every mutating service call.

run_in_transaction wraps one logical operation:
  - optional isolation level (SERIALIZABLE for hold and confirm)
  - wall-clock timeout; exceeding it rolls back and raises TransactionTimeoutError
  - any exception rolls back every partial write
  - PostgreSQL serialization failures / deadlocks and unique violations become
    ConflictError so the caller can re-read and retry
  - any other database failure becomes a generic InternalError, logged with context
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.exceptions import (
    BookingSystemError,
    ConflictError,
    InternalError,
    TransactionTimeoutError,
)
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_conflict, transaction_latency

logger = get_logger(__name__)

T = TypeVar("T")

SERIALIZABLE = "SERIALIZABLE"
RETRYABLE_SQLSTATES = {"40001", "40P01"}  # serialization_failure, deadlock_detected


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


async def run_in_transaction(
    db: AsyncSession,
    work: Callable[[], Awaitable[T]],
    *,
    operation: str,
    isolation_level: Optional[str] = None,
    timeout: Optional[float] = None,
) -> T:
    # Close any read-only transaction the session autobegan before this call
    if db.in_transaction():
        await db.commit()

    async def unit() -> T:
        if isolation_level:
            await db.connection(execution_options={"isolation_level": isolation_level})
        result = await work()
        await db.commit()
        return result

    start = time.perf_counter()
    try:
        return await asyncio.wait_for(unit(), timeout=timeout)
    except asyncio.TimeoutError:
        await db.rollback()
        logger.error("transaction_timeout", operation=operation, timeout=timeout)
        raise TransactionTimeoutError(f"{operation} exceeded {timeout}s")
    except ConflictError:
        await db.rollback()
        record_conflict(operation)
        raise
    except BookingSystemError:
        await db.rollback()
        raise
    except IntegrityError as exc:
        await db.rollback()
        record_conflict(operation)
        logger.warning("transaction_integrity_conflict", operation=operation, error=str(exc.orig))
        raise ConflictError("Conflicting update detected. Please refresh and try again.") from exc
    except DBAPIError as exc:
        await db.rollback()
        if _sqlstate(exc) in RETRYABLE_SQLSTATES:
            record_conflict(operation)
            logger.info("transaction_serialization_failure", operation=operation)
            raise ConflictError("Concurrent update detected. Please try again.") from exc
        logger.exception("transaction_failed", operation=operation)
        raise InternalError(f"{operation} failed") from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("transaction_failed", operation=operation)
        raise InternalError(f"{operation} failed") from exc
    finally:
        transaction_latency.labels(operation=operation).observe(time.perf_counter() - start)
