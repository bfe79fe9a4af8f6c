# ordercore/api/routers/health.py
import redis
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ordercore.api.deps import get_redis
from ordercore.data.database import get_db
from ordercore.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health(db: Session = Depends(get_db), client: redis.Redis = Depends(get_redis)):
    checks = {"database": "ok", "redis": "ok"}

    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check: database unavailable: {e}")
        checks["database"] = "unavailable"

    try:
        client.ping()
    except RedisError as e:
        logger.error(f"Health check: redis unavailable: {e}")
        checks["redis"] = "unavailable"

    healthy = all(v == "ok" for v in checks.values())
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={"status": "ok" if healthy else "degraded", **checks},
    )
