"""Reviews board: list, stats, submit and admin delete"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from portal.api import ClinicApi
from portal.errors import FieldValidationError
from portal.models import Review, ReviewStats

logger = logging.getLogger(__name__)

SORT_KEYS = ("date", "rating")


@dataclass(frozen=True)
class ReviewSaved:
    review: Review
    message: str


@dataclass(frozen=True)
class ReviewNotSaved:
    """Accepted but not published (rating below the threshold); not an error"""
    message: str


ReviewOutcome = Union[ReviewSaved, ReviewNotSaved]


def validate_review(name: str, text: str, rating: Optional[float]) -> Dict[str, str]:
    errors = {}
    if not (name or "").strip():
        errors["name"] = "Name is required"
    if not (text or "").strip():
        errors["review"] = "Please write a review"
    if rating is None or not 0 < rating <= 5:
        errors["rating"] = "Please choose a rating"
    return errors


def filter_reviews(
    reviews: List[Review],
    query: str = "",
    min_rating: float = 0,
    sort_by: str = "date",
) -> List[Review]:
    if sort_by not in SORT_KEYS:
        raise ValueError(f"Unknown sort key: {sort_by}")
    needle = query.strip().lower()
    matched = [
        r for r in reviews
        if r.rating >= min_rating and (not needle or needle in r.name.lower() or needle in r.review.lower())
    ]
    if sort_by == "rating":
        return sorted(matched, key=lambda r: (r.rating, r.created_at), reverse=True)
    return sorted(matched, key=lambda r: r.created_at, reverse=True)


class ReviewBoard:
    def __init__(self, api: ClinicApi):
        self.api = api
        self.reviews: List[Review] = []
        self.stats = ReviewStats()

    async def load(self):
        self.reviews = await self.api.list_reviews()
        self.stats = await self.api.review_stats()

    async def submit(self, name: str, text: str, rating: float) -> ReviewOutcome:
        errors = validate_review(name, text, rating)
        if errors:
            raise FieldValidationError(errors)

        result = await self.api.submit_review(name.strip(), text.strip(), rating)
        message = result.get("message", "")
        if not result.get("saved"):
            logger.info("Review from %s was not published", name)
            return ReviewNotSaved(message)

        review = Review.model_validate(result["review"])
        self.reviews.insert(0, review)
        return ReviewSaved(review=review, message=message)

    async def delete(self, review_id: int, admin_key: str) -> str:
        """The key is typed in at delete time and sent only with this request"""
        if not (admin_key or "").strip():
            raise FieldValidationError({"adminKey": "Admin key is required"})
        message = await self.api.delete_review(review_id, admin_key.strip())
        self.reviews = [r for r in self.reviews if r.id != review_id]
        return message

    def filtered(self, query: str = "", min_rating: float = 0, sort_by: str = "date") -> List[Review]:
        return filter_reviews(self.reviews, query, min_rating, sort_by)
