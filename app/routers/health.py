"""
Health check and statistics endpoints
"""
from datetime import datetime, timezone

from fastapi import APIRouter

from app.database import check_database_health, get_query_stats
from app.services import get_broker

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    db_healthy = check_database_health()
    live_healthy = await get_broker().ping()

    return {
        "status": "healthy" if (db_healthy and live_healthy) else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {
            "database": "up" if db_healthy else "down",
            "live_channel": "up" if live_healthy else "down"
        }
    }


@router.get("/stats/queries")
def get_query_statistics():
    """Get query execution statistics"""
    stats = get_query_stats()

    total = stats['total_queries']
    slow = stats['slow_queries']

    return {
        **stats,
        "slow_query_percentage": round((slow / total * 100) if total > 0 else 0, 2)
    }


@router.get("/stats/live")
def get_live_stats():
    """Get live channel statistics"""
    return get_broker().get_stats()
