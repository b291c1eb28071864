from fastapi import APIRouter, HTTPException, Request
from datetime import datetime
from snappy.core.config import settings
from snappy.database import check_database_health

router = APIRouter()


def _state(ok: bool) -> str:
    return "connected" if ok else "disconnected"


@router.get("/health")
async def health_check(request: Request):
    """Application health check endpoint"""
    try:
        db_health = await check_database_health()

        overall_status = "healthy" if db_health["overall"] else "unhealthy"
        realtime = getattr(request.app.state, "realtime", None)

        return {
            "status": overall_status,
            "timestamp": datetime.utcnow(),
            "databases": {
                "mysql": _state(db_health["mysql"]),
                "mongodb": _state(db_health["mongodb"]),
                "redis": _state(db_health["redis"])
            },
            "realtime": {
                "connections": realtime.manager.connection_count if realtime else 0,
                "online_users": len(realtime.registry.online_user_ids()) if realtime else 0,
                "rooms": realtime.rooms.room_count if realtime else 0
            },
            "service": settings.app_name
        }
    except Exception as e:
        raise HTTPException(
            status_code=503,
            detail=f"Health check failed: {str(e)}"
        )


@router.get("/health/ready")
async def readiness_check():
    """Kubernetes readiness probe endpoint"""
    db_health = await check_database_health()

    if not db_health["overall"]:
        raise HTTPException(
            status_code=503,
            detail="Service not ready - database connections failed"
        )

    return {"status": "ready"}


@router.get("/health/live")
async def liveness_check():
    """Kubernetes liveness probe endpoint"""
    return {"status": "alive", "timestamp": datetime.utcnow()}
