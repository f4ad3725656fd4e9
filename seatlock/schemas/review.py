from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from seatlock.schemas.common import CamelModel


class ReviewCreateRequest(CamelModel):
    stars: int = Field(..., ge=1, le=5)
    review: Optional[str] = Field(None, max_length=1000)


class ReviewOut(CamelModel):
    id: int
    booking_id: int
    bus_id: int
    user_id: int
    stars: int
    review: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_model(cls, review) -> "ReviewOut":
        return cls(
            id=review.id,
            booking_id=review.booking_id,
            bus_id=review.bus_id,
            user_id=review.user_id,
            stars=review.stars,
            review=review.review,
            created_at=review.created_at,
        )


class ReviewResponse(BaseModel):
    success: bool = True
    data: ReviewOut


class BusReviewsResponse(CamelModel):
    success: bool = True
    count: int
    average_rating: Optional[float] = None
    data: List[ReviewOut]
