# coffeevibes/services/review_service.py
# Shop reviews: create, list (newest first, with author profile), update, delete.

from datetime import datetime, timezone
from typing import List, Optional

import structlog
from pydantic import ValidationError

from coffeevibes.core.errors import DecodeError, NotFoundError
from coffeevibes.models.dto import Review
from coffeevibes.services.data_service import DataServiceClient, eq

logger = structlog.get_logger(__name__)

REVIEWS_TABLE = "coffee_shop_reviews"
REVIEW_COLUMNS = (
    "review_id,user_id,shop_id,rating,review_text,created_at,modified_at,"
    "user_profiles(user_id,name,profile_photo)"
)


def _decode_reviews(rows) -> List[Review]:
    try:
        return [Review.model_validate(row) for row in rows or []]
    except ValidationError as e:
        raise DecodeError(f"Invalid review record: {e}") from e


class ReviewService:
    def __init__(self, data_service: DataServiceClient):
        self.data_service = data_service

    async def create_review(self, user_id: str, shop_id: str, rating: int, review_text: str) -> Review:
        rows = await self.data_service.insert(
            REVIEWS_TABLE,
            {
                "user_id": user_id,
                "shop_id": shop_id,
                "rating": rating,
                "review_text": review_text,
            },
        )
        logger.info("review_created", user_id=user_id, shop_id=shop_id, rating=rating)
        reviews = _decode_reviews(rows)
        if not reviews:
            raise DecodeError("Review insert returned no record.")
        return reviews[0]

    async def get_reviews(self, shop_id: str) -> List[Review]:
        rows = await self.data_service.select(
            REVIEWS_TABLE,
            {"shop_id": eq(shop_id)},
            columns=REVIEW_COLUMNS,
            order="created_at.desc",
        )
        return _decode_reviews(rows)

    async def get_user_review(self, user_id: str, shop_id: str) -> Optional[Review]:
        rows = await self.data_service.select(
            REVIEWS_TABLE,
            {"user_id": eq(user_id), "shop_id": eq(shop_id)},
        )
        reviews = _decode_reviews(rows)
        return reviews[0] if reviews else None

    async def update_review(self, user_id: str, review_id: str, rating: int, review_text: str) -> Review:
        """Update a review the caller wrote. Someone else's review counts as not found."""
        rows = await self.data_service.update(
            REVIEWS_TABLE,
            {
                "rating": rating,
                "review_text": review_text,
                "modified_at": datetime.now(timezone.utc).isoformat(),
            },
            {"review_id": eq(review_id), "user_id": eq(user_id)},
        )
        reviews = _decode_reviews(rows)
        if not reviews:
            logger.info("review_update_unmatched", review_id=review_id, user_id=user_id)
            raise NotFoundError(f"Review {review_id} not found.")
        logger.info("review_updated", review_id=review_id, user_id=user_id, rating=rating)
        return reviews[0]

    async def delete_review(self, user_id: str, review_id: str) -> None:
        deleted = await self.data_service.delete(
            REVIEWS_TABLE,
            {"review_id": eq(review_id), "user_id": eq(user_id)},
        )
        if not deleted:
            logger.info("review_delete_unmatched", review_id=review_id, user_id=user_id)
            raise NotFoundError(f"Review {review_id} not found.")
        logger.info("review_deleted", review_id=review_id, user_id=user_id)
