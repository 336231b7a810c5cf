"""System health endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel
import psutil

from database import check_connection
from ..websockets import manager as websocket_manager

# Create router
router = APIRouter(
    prefix="/system",
    tags=["System"]
)

CPU_DEGRADED_PERCENT = 80

class SystemHealth(BaseModel):
    """Model for system health data."""
    status: str
    boot_time: datetime
    cpu_usage: float
    memory_usage: float
    disk_usage: float
    websocket_connections: int
    database_status: str

@router.get("/health")
async def get_system_health() -> SystemHealth:
    """Get system health status.

    The service reports ``unhealthy`` when the database does not answer and
    ``degraded`` when the host CPU is above 80%.
    """
    cpu_percent = psutil.cpu_percent()
    memory = psutil.virtual_memory()
    disk = psutil.disk_usage('/')

    db_ok = await check_connection()
    if not db_ok:
        health = "unhealthy"
    elif cpu_percent >= CPU_DEGRADED_PERCENT:
        health = "degraded"
    else:
        health = "healthy"

    return SystemHealth(
        status=health,
        boot_time=datetime.fromtimestamp(psutil.boot_time(), tz=timezone.utc),
        cpu_usage=cpu_percent,
        memory_usage=memory.percent,
        disk_usage=disk.percent,
        websocket_connections=sum(len(c) for c in websocket_manager.active_connections.values()),
        database_status="connected" if db_ok else "unavailable"
    )
