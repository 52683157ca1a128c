from datetime import datetime

from pydantic import BaseModel, Field, field_validator

COMMENT_MIN_LENGTH = 10


class ReviewCreateRequest(BaseModel):
    score: int = Field(..., ge=1, le=5, description="Rating score (1-5)")
    comment: str = Field(..., description="Review comment or feedback")

    @field_validator("comment")
    @classmethod
    def comment_long_enough(cls, value: str) -> str:
        value = value.strip()
        if len(value) < COMMENT_MIN_LENGTH:
            raise ValueError(f"comment must be at least {COMMENT_MIN_LENGTH} characters")
        return value


class MessageResponse(BaseModel):
    message: str


class ReviewResponse(BaseModel):
    id: int
    score: int
    comment: str
    user_id: int
    vinyl_id: int
    created_at: datetime

    model_config = {"from_attributes": True}


class ReviewListResponse(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int
    data: list[ReviewResponse]
