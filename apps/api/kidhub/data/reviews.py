from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List

from ..case import keys_to_camel, keys_to_snake
from ..errors import NotFoundError
from ..supabase import SupabaseClient, eq
from . import ACTIVITIES, REVIEWS, first_row


async def create_review(
    supabase: SupabaseClient,
    activity_id: str,
    guardian_id: str,
    *,
    rating: int,
    comment: str,
) -> Dict[str, Any]:
    if not 1 <= rating <= 5:
        raise ValueError("rating must be between 1 and 5")

    activity = await supabase.select_one(
        ACTIVITIES,
        {"select": "organizer_id", "id": eq(activity_id)},
    )
    if activity is None:
        raise NotFoundError("activity not found")

    payload = {
        "activityId": activity_id,
        "guardianId": guardian_id,
        "organizerId": activity["organizer_id"],
        "rating": rating,
        "comment": comment,
        "date": datetime.now(tz=timezone.utc).isoformat(),
    }
    rows = await supabase.insert(REVIEWS, keys_to_snake(payload))
    return keys_to_camel(first_row(rows, "review"))


async def list_activity_reviews(supabase: SupabaseClient, activity_id: str) -> List[Dict[str, Any]]:
    rows = await supabase.select(
        REVIEWS,
        {"select": "*,guardians(first_name,last_name)", "activity_id": eq(activity_id)},
    )
    return keys_to_camel(rows)


async def list_organizer_reviews(supabase: SupabaseClient, organizer_id: str) -> List[Dict[str, Any]]:
    rows = await supabase.select(
        REVIEWS,
        {
            "select": "*,activities(id,title),guardians(first_name,last_name)",
            "organizer_id": eq(organizer_id),
        },
    )
    return keys_to_camel(rows)
