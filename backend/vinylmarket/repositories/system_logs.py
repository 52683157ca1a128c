from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import LogLevel, SystemLog


class SystemLogsRepository:
    async def create(self, session: AsyncSession, message: str, level: LogLevel) -> SystemLog:
        log = SystemLog(message=message, level=level.value)
        session.add(log)
        await session.flush()
        return log

    async def find_page(
        self, session: AsyncSession, page: int, limit: int, level: LogLevel | None = None
    ) -> tuple[list[SystemLog], int]:
        query = select(SystemLog)
        count = select(func.count()).select_from(SystemLog)
        if level is not None:
            query = query.where(SystemLog.level == level.value)
            count = count.where(SystemLog.level == level.value)

        total = await session.scalar(count)
        result = await session.execute(
            query.order_by(SystemLog.created_at, SystemLog.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars()), total or 0
