from fastapi import APIRouter, Depends, Query

from ..models import LogLevel
from ..schemas.system_log import SystemLogListResponse
from ..security.auth import TokenPayload, require_admin
from ..services.system_logs import SystemLogService
from .deps import get_system_log_service

router = APIRouter(prefix="/system-logs", tags=["system-logs"])


@router.get("", response_model=SystemLogListResponse)
async def get_system_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    level: LogLevel | None = Query(None),
    admin: TokenPayload = Depends(require_admin),
    system_logs: SystemLogService = Depends(get_system_log_service),
):
    """Oldest first. Admins only."""
    return await system_logs.get_system_logs(page=page, limit=limit, level=level)
