from fastapi import APIRouter, Depends, Path, Query, Request, status

from ..schemas.review import MessageResponse, ReviewCreateRequest, ReviewListResponse
from ..security.auth import TokenPayload, get_current_active_user
from ..security.rate_limiter import RateLimits, limiter
from ..services.reviews import ReviewService
from .deps import get_review_service

router = APIRouter(prefix="/reviews", tags=["reviews"])


@router.post("/{vinyl_id}", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RateLimits.REVIEW_WRITE)
async def create_review(
    request: Request,
    payload: ReviewCreateRequest,
    vinyl_id: int = Path(..., gt=0),
    user: TokenPayload = Depends(get_current_active_user),
    reviews: ReviewService = Depends(get_review_service),
):
    """Review a vinyl. One review per user and vinyl."""
    return await reviews.create_review(payload, user, vinyl_id)


@router.get("/vinyl/{vinyl_id}", response_model=ReviewListResponse)
async def list_reviews(
    vinyl_id: int = Path(..., gt=0),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: TokenPayload = Depends(get_current_active_user),
    reviews: ReviewService = Depends(get_review_service),
):
    return await reviews.list_reviews(vinyl_id, page=page, limit=limit)


@router.delete("/{review_id}", response_model=MessageResponse)
@limiter.limit(RateLimits.REVIEW_WRITE)
async def remove_review(
    request: Request,
    review_id: int = Path(..., gt=0),
    user: TokenPayload = Depends(get_current_active_user),
    reviews: ReviewService = Depends(get_review_service),
):
    """Delete a review. Only its author or an admin may do this."""
    return await reviews.remove_review(review_id, user)
