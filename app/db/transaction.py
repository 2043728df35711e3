import logging
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.exceptions import ConflictError, StoreError

logger = logging.getLogger(__name__)


async def commit(session: AsyncSession) -> None:
    """Commit, translating store failures into domain errors (session is rolled back)."""
    try:
        await session.commit()
    except StaleDataError as e:
        await session.rollback()
        logger.warning(f"Concurrent update detected: {e}")
        raise ConflictError("Record was modified concurrently, retry the operation") from e
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Commit failed: {e}")
        raise StoreError("Storage is temporarily unavailable") from e


async def flush(session: AsyncSession) -> None:
    try:
        await session.flush()
    except StaleDataError as e:
        await session.rollback()
        raise ConflictError("Record was modified concurrently, retry the operation") from e
