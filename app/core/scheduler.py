from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.redis import RedisJobStore
from app.core.config import settings
import logging
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

# Configure Redis Job Store
redis_url_str = str(settings.REDIS_URL)
parsed_redis = urlparse(redis_url_str)

# RedisJobStore initiates Redis(db=..., **kwargs), so pass the URL parts separately
redis_kwargs = {
    'host': parsed_redis.hostname or 'localhost',
    'port': parsed_redis.port or 6379,
    'password': parsed_redis.password,
}

# DB is typically path '/0' -> 0
db_val = 0
if parsed_redis.path and parsed_redis.path != '/':
    try:
        db_val = int(parsed_redis.path.lstrip('/'))
    except ValueError:
        pass

jobstores = {
    'default': RedisJobStore(
        jobs_key='matchmaking:jobs',
        run_times_key='matchmaking:run_times',
        db=db_val,
        **redis_kwargs
    )
}

scheduler = AsyncIOScheduler(jobstores=jobstores, timezone="UTC")


async def scheduled_reconciliation_job():
    """
    Periodic sweep creating match rows missing for reciprocal likes.
    One failing user does not stop the sweep.
    """
    logger.info("Starting scheduled reconciliation job...")
    from app.db.session import AsyncSessionLocal
    from app.services.user_service import UserService
    from app.services.match_service import MatchService

    async with AsyncSessionLocal() as session:
        user_ids = await UserService(session).get_active_user_ids()

    repaired = 0
    failed = 0
    for user_id in user_ids:
        try:
            async with AsyncSessionLocal() as session:
                repaired += await MatchService(session).reconciliation_sweep(user_id)
        except Exception as e:
            failed += 1
            logger.error(f"Reconciliation failed for user {user_id}: {e}")

    logger.info(
        f"Reconciliation job finished: {len(user_ids)} users, {repaired} pairs repaired, {failed} failures"
    )
    return repaired


async def start_scheduler():
    """Start the scheduler."""
    if not scheduler.running:
        scheduler.add_job(
            scheduled_reconciliation_job,
            'interval',
            minutes=settings.RECONCILIATION_INTERVAL_MINUTES,
            id='scheduled_reconciliation_job',
            replace_existing=True
        )

        scheduler.start()
        logger.info("APScheduler started.")


async def shutdown_scheduler():
    """Shutdown the scheduler."""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("APScheduler shut down.")
