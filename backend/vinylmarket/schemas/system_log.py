from datetime import datetime

from pydantic import BaseModel


class SystemLogResponse(BaseModel):
    id: int
    message: str
    level: str
    created_at: datetime

    model_config = {"from_attributes": True}


class SystemLogListResponse(BaseModel):
    total: int
    page: int
    limit: int
    logs: list[SystemLogResponse]
