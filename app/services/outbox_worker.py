import asyncio
import logging
import os

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session

from app.core.timeutils import utcnow
from app.database import SessionLocal, is_postgres
from app.services.outbox_processor import (
    process_outbox_batch,
    release_outbox_lock,
    try_acquire_outbox_lock,
)

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(v)
    except ValueError:
        return default


def outbox_worker_enabled() -> bool:
    # Disabled under pytest so tests drive the outbox explicitly.
    if os.getenv("PYTEST_CURRENT_TEST"):
        return False
    v = os.getenv("OUTBOX_WORKER_ENABLED")
    if v is None:
        return True
    return v.strip().lower() not in {"0", "false", "no"}


def _tag_connection(db: Session, name: str) -> None:
    if is_postgres(db):
        db.execute(text(f"set application_name = '{name}'"))


def _dispose_pool(db: Session) -> None:
    # Drop pooled connections so the next tick reconnects after a DB restart.
    engine = db.get_bind()
    if engine is not None and hasattr(engine, "dispose"):
        engine.dispose()


def _run_tick(batch_size: int) -> None:
    work_db: Session = SessionLocal()
    try:
        _tag_connection(work_db, "shift_timesheets_outbox_worker_tick")
        result = process_outbox_batch(db=work_db, now=utcnow(), batch_size=batch_size)
        work_db.commit()
        if result.processed or result.failed:
            logger.info(
                "Outbox tick",
                extra={"processed": result.processed, "failed": result.failed},
            )
    except Exception:
        work_db.rollback()
        raise
    finally:
        work_db.close()


async def outbox_worker_loop(*, poll_seconds: float = 1.0, batch_size: int = 50) -> None:
    """
    Single-worker loop delivering outbox notifications.

    - A failed tick is logged and retried on the next poll; it never takes the server down.
    - Only one process delivers at a time (Postgres advisory lock).
    - A lost database connection is recovered by disposing the pool.
    """
    logger.info(
        "Outbox worker started",
        extra={"poll_seconds": float(poll_seconds), "batch_size": int(batch_size)},
    )

    while True:
        lock_db: Session = SessionLocal()
        have_lock = False

        try:
            _tag_connection(lock_db, "shift_timesheets_outbox_worker_lock")

            have_lock = try_acquire_outbox_lock(lock_db)
            if not have_lock:
                await asyncio.sleep(poll_seconds)
                continue

            # The advisory lock lives as long as lock_db's connection.
            while True:
                try:
                    _run_tick(batch_size)
                except (OperationalError, DBAPIError):
                    _dispose_pool(lock_db)
                    logger.exception(
                        "Outbox worker tick failed",
                        extra={"component": "outbox_worker", "reason": "dbapi_error"},
                    )
                except Exception:
                    logger.exception(
                        "Outbox worker tick failed",
                        extra={"component": "outbox_worker", "reason": "unexpected"},
                    )

                await asyncio.sleep(poll_seconds)

        except asyncio.CancelledError:
            logger.info("Outbox worker cancelled; shutting down")
            raise

        except (OperationalError, DBAPIError):
            logger.exception(
                "Outbox worker lock connection failed",
                extra={"component": "outbox_worker", "reason": "lock_dbapi_error"},
            )
            _dispose_pool(lock_db)
            await asyncio.sleep(poll_seconds)

        except Exception:
            logger.exception(
                "Outbox worker crashed",
                extra={"component": "outbox_worker", "reason": "outer_unexpected"},
            )
            await asyncio.sleep(poll_seconds)

        finally:
            if have_lock:
                try:
                    release_outbox_lock(lock_db)
                except (OperationalError, DBAPIError):
                    logger.warning("Outbox lock release failed; connection already gone")
            lock_db.close()


def start_outbox_worker_task() -> asyncio.Task | None:
    if not outbox_worker_enabled():
        logger.info("Outbox worker disabled")
        return None

    poll_seconds = float(os.getenv("OUTBOX_POLL_SECONDS", "1.0"))
    batch_size = _env_int("OUTBOX_BATCH_SIZE", 50)
    return asyncio.create_task(outbox_worker_loop(poll_seconds=poll_seconds, batch_size=batch_size))
