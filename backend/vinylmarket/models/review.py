from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base
from .catalog import User, Vinyl


class Review(Base):
    __tablename__ = "review"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    score: Mapped[int] = mapped_column(Integer)
    comment: Mapped[str] = mapped_column(Text)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    vinyl_id: Mapped[int] = mapped_column(ForeignKey("vinyl.id", ondelete="CASCADE"), index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Loaded only through explicit joins in ReviewsRepository
    user: Mapped[User] = relationship(lazy="raise")
    vinyl: Mapped[Vinyl | None] = relationship(lazy="raise")

    __table_args__ = (
        UniqueConstraint("user_id", "vinyl_id", name="uq_review_user_vinyl"),
    )

    def __repr__(self) -> str:
        return f"<Review {self.id} vinyl={self.vinyl_id} score={self.score}>"
