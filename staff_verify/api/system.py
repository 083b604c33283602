"""
System Router - Health checks and monitoring
"""
from fastapi import APIRouter, Depends
from datetime import datetime, timezone
import redis
from sqlalchemy import text
from sqlalchemy.orm import Session

from staff_verify.config import settings
from staff_verify.dependencies import get_db

router = APIRouter()


@router.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """
    Health check for the database and the Redis broker.
    Also reports the depth of the scoring and notification queues.
    """
    database_status = "unhealthy"
    try:
        db.execute(text("SELECT 1"))
        database_status = "healthy"
    except Exception:
        pass

    redis_status = "unhealthy"
    queue_depth = {"scoring": 0, "notifications": 0}
    try:
        r = redis.from_url(settings.REDIS_URL, socket_connect_timeout=2)
        r.ping()
        redis_status = "healthy"
        for queue in queue_depth:
            queue_depth[queue] = r.llen(queue) or 0
    except Exception:
        pass

    return {
        "database": database_status,
        "redis": redis_status,
        "worker_queue_depth": queue_depth,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
