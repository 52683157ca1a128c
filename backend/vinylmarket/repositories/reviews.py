from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Review


class ReviewsRepository:
    async def find_by_user_and_vinyl(
        self, session: AsyncSession, user_id: int, vinyl_id: int
    ) -> Review | None:
        return await session.scalar(
            select(Review).where(Review.user_id == user_id, Review.vinyl_id == vinyl_id)
        )

    async def find_by_id(self, session: AsyncSession, review_id: int) -> Review | None:
        return await session.get(Review, review_id)

    async def create(
        self, session: AsyncSession, *, user_id: int, vinyl_id: int, score: int, comment: str
    ) -> Review:
        review = Review(user_id=user_id, vinyl_id=vinyl_id, score=score, comment=comment)
        session.add(review)
        await session.flush()
        return review

    async def remove(self, session: AsyncSession, review_id: int) -> bool:
        """Delete a review; False when another writer removed it first."""
        result = await session.execute(delete(Review).where(Review.id == review_id))
        return result.rowcount > 0

    async def find_all_by_vinyl(
        self, session: AsyncSession, vinyl_id: int, page: int, limit: int
    ) -> tuple[list[Review], int]:
        total = await session.scalar(
            select(func.count()).select_from(Review).where(Review.vinyl_id == vinyl_id)
        )
        result = await session.execute(
            select(Review)
            .where(Review.vinyl_id == vinyl_id)
            .order_by(Review.created_at.desc(), Review.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars()), total or 0
