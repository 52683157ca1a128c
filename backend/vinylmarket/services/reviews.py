import math

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from ..core.errors import DuplicateReviewError, ForbiddenError, NotFoundError
from ..core.metrics import reviews_total
from ..repositories import ReviewsRepository, VinylsRepository
from ..schemas.review import ReviewCreateRequest, ReviewListResponse, ReviewResponse
from ..security.auth import TokenPayload
from .system_logs import SystemLogService

logger = structlog.get_logger(__name__)


class ReviewService:
    """Review pipeline.

    Each mutation and the vinyl's rating recomputation share one
    transaction: either both land or neither does. The transaction starts
    by locking the vinyl row, so concurrent writers for one vinyl run one
    after another and never average a stale set of reviews.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        reviews: ReviewsRepository | None = None,
        vinyls: VinylsRepository | None = None,
        system_logs: SystemLogService | None = None,
    ):
        self._session_factory = session_factory
        self._reviews = reviews or ReviewsRepository()
        self._vinyls = vinyls or VinylsRepository()
        self._system_logs = system_logs

    async def create_review(
        self, payload: ReviewCreateRequest, user: TokenPayload, vinyl_id: int
    ) -> dict:
        user_id = user.user_id

        async with self._session_factory() as session:
            try:
                async with session.begin():
                    vinyl = await self._vinyls.find_by_id_for_update(session, vinyl_id)
                    if vinyl is None:
                        raise NotFoundError(f"Vinyl with ID {vinyl_id} not found")

                    existing = await self._reviews.find_by_user_and_vinyl(session, user_id, vinyl_id)
                    if existing is not None:
                        raise DuplicateReviewError("User has already reviewed this vinyl")

                    review = await self._reviews.create(
                        session,
                        user_id=user_id,
                        vinyl_id=vinyl_id,
                        score=payload.score,
                        comment=payload.comment,
                    )
                    rating = await self._vinyls.update_average_rating(session, vinyl_id)
            except IntegrityError as e:
                # A concurrent submission won the race past the existence check
                if "uq_review_user_vinyl" in str(e.orig) or "review.user_id" in str(e.orig):
                    raise DuplicateReviewError("User has already reviewed this vinyl") from e
                raise

        reviews_total.labels(action="created").inc()
        logger.info("review_created", review_id=review.id, user_id=user_id, vinyl_id=vinyl_id)
        await self._record_rating(vinyl_id, rating)
        return {"message": "Successfully created vinyl's review"}

    async def remove_review(self, review_id: int, user: TokenPayload) -> dict:
        async with self._session_factory() as session:
            async with session.begin():
                review = await self._reviews.find_by_id(session, review_id)
                if review is None:
                    raise NotFoundError(f"Review with ID {review_id} not found")

                if review.user_id != user.user_id and not user.is_admin:
                    raise ForbiddenError("User can only delete their own reviews")

                vinyl_id = review.vinyl_id
                await self._vinyls.find_by_id_for_update(session, vinyl_id)
                if not await self._reviews.remove(session, review_id):
                    raise NotFoundError(f"Review with ID {review_id} not found")

                rating = await self._vinyls.update_average_rating(session, vinyl_id)

        reviews_total.labels(action="removed").inc()
        logger.info("review_removed", review_id=review_id, user_id=user.user_id, vinyl_id=vinyl_id)
        await self._record_rating(vinyl_id, rating)
        return {"message": "Review deleted successfully"}

    async def list_reviews(self, vinyl_id: int, page: int = 1, limit: int = 10) -> ReviewListResponse:
        async with self._session_factory() as session:
            reviews, total = await self._reviews.find_all_by_vinyl(session, vinyl_id, page, limit)

        return ReviewListResponse(
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit) if limit else 0,
            data=[ReviewResponse.model_validate(review) for review in reviews],
        )

    async def _record_rating(self, vinyl_id: int, rating) -> None:
        if self._system_logs is not None:
            await self._system_logs.record(f"Average rating for vinyl {vinyl_id} updated to {rating}")
