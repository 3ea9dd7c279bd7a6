from typing import List

from fastapi import APIRouter, Depends
from pydantic import Field

from ..data import reviews as reviews_api
from ..deps import get_supabase, require_guardian
from ..schemas import CamelModel, GuardianProfile, Review
from ..supabase import SupabaseClient

router = APIRouter(prefix="/api/v1/reviews", tags=["reviews"])


class ReviewPayload(CamelModel):
    activity_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""


@router.post("", response_model=Review)
async def create_review(
    payload: ReviewPayload,
    guardian: GuardianProfile = Depends(require_guardian),
    supabase: SupabaseClient = Depends(get_supabase),
) -> Review:
    row = await reviews_api.create_review(
        supabase,
        payload.activity_id,
        guardian.id,
        rating=payload.rating,
        comment=payload.comment.strip(),
    )
    return Review.model_validate(row)


@router.get("/activity/{activity_id}", response_model=List[Review])
async def list_activity_reviews(
    activity_id: str,
    supabase: SupabaseClient = Depends(get_supabase),
) -> List[Review]:
    rows = await reviews_api.list_activity_reviews(supabase, activity_id)
    return [Review.model_validate(row) for row in rows]


@router.get("/organizer/{organizer_id}", response_model=List[Review])
async def list_organizer_reviews(
    organizer_id: str,
    supabase: SupabaseClient = Depends(get_supabase),
) -> List[Review]:
    rows = await reviews_api.list_organizer_reviews(supabase, organizer_id)
    return [Review.model_validate(row) for row in rows]
