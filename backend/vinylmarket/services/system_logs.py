"""
Persisted operational log.

Webhook outcomes and rating changes are written to ``system_logs`` so an
admin can audit them from the API. A row is written in its own
transaction, after the work it describes; failing to write it is logged
and does not undo that work.
"""

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from ..models import LogLevel, SystemLog
from ..repositories import SystemLogsRepository
from ..schemas.system_log import SystemLogListResponse, SystemLogResponse

logger = structlog.get_logger(__name__)


class SystemLogService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        logs: SystemLogsRepository | None = None,
    ):
        self._session_factory = session_factory
        self._logs = logs or SystemLogsRepository()

    async def record(self, message: str, level: LogLevel = LogLevel.INFO) -> SystemLog | None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    return await self._logs.create(session, message, level)
        except SQLAlchemyError as e:
            logger.error("system_log_write_failed", level=level.value, log_message=message, error=str(e))
            return None

    async def get_system_logs(
        self, page: int = 1, limit: int = 50, level: LogLevel | None = None
    ) -> SystemLogListResponse:
        async with self._session_factory() as session:
            logs, total = await self._logs.find_page(session, page, limit, level)

        return SystemLogListResponse(
            total=total,
            page=page,
            limit=limit,
            logs=[SystemLogResponse.model_validate(log) for log in logs],
        )
