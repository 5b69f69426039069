from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text

from api.src.db.database import get_db
from api.src.services.queue import get_pending_trigger, get_redis_client, get_wake_queue_length

router = APIRouter(tags=["health"])

async def check_database(db: AsyncSession) -> str:
    try:
        await db.execute(text("SELECT 1"))
        return "healthy"
    except Exception as e:
        return f"unhealthy: {e}"

async def check_redis() -> str:
    client = await get_redis_client()
    try:
        await client.ping()
        return "healthy"
    except Exception as e:
        return f"unhealthy: {e}"
    finally:
        await client.aclose()

@router.get("/health")
async def health_check():
    return {"status": "healthy", "service": "crossdeploy-api"}

@router.get("/health/db")
async def db_health_check(db: AsyncSession = Depends(get_db)):
    database = await check_database(db)
    return {"status": "healthy" if database == "healthy" else "unhealthy", "database": database}

@router.get("/health/redis")
async def redis_health_check():
    redis = await check_redis()
    return {"status": "healthy" if redis == "healthy" else "unhealthy", "redis": redis}

@router.get("/health/trigger")
async def trigger_health_check():
    """Whether a webhook poll request is waiting for the controller."""
    try:
        pending = await get_pending_trigger()
        queued = await get_wake_queue_length()
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy", "pending": pending is not None, "queued": queued}

@router.get("/health/all")
async def full_health_check(db: AsyncSession = Depends(get_db)):
    """Combined health check for the API, its database and the trigger inbox."""
    health = {
        "api": "healthy",
        "database": await check_database(db),
        "redis": await check_redis(),
    }
    overall = "healthy" if all(v == "healthy" for v in health.values()) else "degraded"

    return {"status": overall, "services": health}
