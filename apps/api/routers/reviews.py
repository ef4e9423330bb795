"""Patient review endpoints"""
import logging
import math

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlmodel import Session, select

from database import get_session
from dependencies import require_admin_key
from models import Review
from schemas import (
    MessageResponse,
    ReviewCreate,
    ReviewResponse,
    ReviewStats,
    ReviewSubmitResponse,
    ReviewsResponse,
)
from utils.rate_limit import REVIEW_LIMIT, limiter
from validators.business_rules import get_business_rules

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reviews", tags=["Reviews"])


@router.get("", response_model=ReviewsResponse)
def get_reviews(session: Session = Depends(get_session)):
    """Published reviews, newest first"""
    reviews = session.exec(select(Review).order_by(Review.created_at.desc(), Review.id.desc())).all()
    return ReviewsResponse(reviews=[ReviewResponse.model_validate(r) for r in reviews])


@router.get("/stats", response_model=ReviewStats)
def get_review_stats(session: Session = Depends(get_session)):
    """Count, average and distribution by whole star"""
    ratings = session.exec(select(Review.rating)).all()
    distribution = {str(star): 0 for star in range(1, 6)}
    for rating in ratings:
        star = min(5, max(1, math.floor(rating)))
        distribution[str(star)] += 1

    average = round(sum(ratings) / len(ratings), 2) if ratings else 0.0
    return ReviewStats(total=len(ratings), average=average, distribution=distribution)


@router.post("", response_model=ReviewSubmitResponse)
@limiter.limit(REVIEW_LIMIT)
def submit_review(
    request: Request,
    review_data: ReviewCreate,
    session: Session = Depends(get_session)
):
    """Accept a review; only ratings at or above the threshold are published"""
    rules = get_business_rules()

    name = review_data.name.strip()
    text = review_data.review.strip()
    if not name or not text:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Name and review text are required"
        )
    if not 0 < review_data.rating <= rules.REVIEW_MAX_RATING:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Rating must be greater than 0 and at most {rules.REVIEW_MAX_RATING:g}"
        )

    if review_data.rating < rules.REVIEW_MIN_RATING_TO_SAVE:
        logger.info("Review from %s not published (rating %s)", name, review_data.rating)
        return ReviewSubmitResponse(
            saved=False,
            message="Thank you for your feedback. We are sorry about your experience and will work on it."
        )

    review = Review(name=name, review=text, rating=review_data.rating)
    session.add(review)
    session.commit()
    session.refresh(review)

    return ReviewSubmitResponse(
        saved=True,
        message="Thank you! Your review has been published.",
        review=ReviewResponse.model_validate(review)
    )


@router.delete(
    "/{review_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_admin_key)]
)
def delete_review(review_id: int, session: Session = Depends(get_session)):
    """Delete a review (admin key required)"""
    review = session.get(Review, review_id)
    if not review:
        raise HTTPException(status_code=404, detail="Review not found")

    session.delete(review)
    session.commit()
    logger.info("Review %s deleted", review_id)
    return MessageResponse(message="Review deleted successfully")
