from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from ..models import Review, Vinyl

logger = structlog.get_logger(__name__)

RATING_QUANTUM = Decimal("0.01")


def round_rating(value) -> Decimal:
    """Round an average score to 2 places, halves away from zero."""
    return Decimal(str(value or 0)).quantize(RATING_QUANTUM, rounding=ROUND_HALF_UP)


class VinylsRepository:
    """Catalog reads plus the average-rating aggregate."""

    async def find_by_id_for_update(self, session: AsyncSession, vinyl_id: int) -> Vinyl | None:
        """Load the vinyl and hold its row lock until the transaction ends.

        Review writers for the same vinyl queue up here, so each rating
        recompute sees every review committed before it.
        """
        return await session.scalar(select(Vinyl).where(Vinyl.id == vinyl_id).with_for_update())

    async def find_many(self, session: AsyncSession, vinyl_ids: list[int]) -> dict[int, Vinyl]:
        result = await session.execute(select(Vinyl).where(Vinyl.id.in_(vinyl_ids)))
        return {vinyl.id: vinyl for vinyl in result.scalars()}

    async def update_average_rating(self, session: AsyncSession, vinyl_id: int) -> Decimal:
        """Recompute ``average_rating`` from the vinyl's reviews.

        Runs on the caller's session so the read and the write share the
        transaction that inserted or deleted the review.
        """
        average = await session.scalar(
            select(func.coalesce(func.avg(Review.score), 0)).where(Review.vinyl_id == vinyl_id)
        )
        rating = round_rating(average)

        await session.execute(
            update(Vinyl)
            .where(Vinyl.id == vinyl_id)
            .values(average_rating=rating)
            .execution_options(synchronize_session=False)
        )

        logger.info("average_rating_updated", vinyl_id=vinyl_id, average_rating=str(rating))
        return rating
