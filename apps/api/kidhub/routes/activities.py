import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..data import activities as activities_api
from ..deps import get_supabase, require_organizer
from ..schemas import Activity, ActivityStatus, CamelModel, OrganizerProfile
from ..supabase import SupabaseClient

router = APIRouter(prefix="/api/v1/activities", tags=["activities"])
logger = logging.getLogger(__name__)


class ActivityPayload(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    long_description: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    location: Optional[str] = None
    age_group: Optional[str] = None
    category: Optional[str] = None
    capacity: Optional[int] = None
    price: Optional[str] = None
    is_paid: Optional[bool] = None
    status: Optional[ActivityStatus] = None
    image_url: Optional[str] = None


async def _owned_activity(supabase: SupabaseClient, activity_id: str, organizer: OrganizerProfile) -> dict:
    activity = await activities_api.get_activity(supabase, activity_id)
    if activity is None:
        raise HTTPException(status_code=404, detail="Activity not found.")
    if activity.get("organizerId") != organizer.id:
        raise HTTPException(status_code=403, detail="Activity belongs to another organizer.")
    return activity


@router.get("", response_model=List[Activity])
async def list_activities(
    category: Optional[str] = Query(None, description="Category name or 'All Events'"),
    date: Optional[str] = Query(None, description="ISO date"),
    location: Optional[str] = Query(None, description="Substring of the location"),
    search: Optional[str] = Query(None, description="Matches title or description"),
    supabase: SupabaseClient = Depends(get_supabase),
) -> List[Activity]:
    filters = activities_api.ActivityFilters(
        category=category, date=date, location=location, search=search
    )
    rows = await activities_api.list_activities(supabase, filters)
    logger.info("activities query", extra={"count": len(rows), "category": category})
    return [Activity.model_validate(row) for row in rows]


@router.get("/organizer/{organizer_id}", response_model=List[Activity])
async def list_organizer_activities(
    organizer_id: str,
    supabase: SupabaseClient = Depends(get_supabase),
) -> List[Activity]:
    rows = await activities_api.list_organizer_activities(supabase, organizer_id)
    return [Activity.model_validate(row) for row in rows]


@router.get("/{activity_id}", response_model=Activity)
async def get_activity(
    activity_id: str,
    supabase: SupabaseClient = Depends(get_supabase),
) -> Activity:
    row = await activities_api.get_activity(supabase, activity_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Activity not found.")
    return Activity.model_validate(row)


@router.get("/{activity_id}/participants")
async def list_participants(
    activity_id: str,
    organizer: OrganizerProfile = Depends(require_organizer),
    supabase: SupabaseClient = Depends(get_supabase),
) -> List[dict]:
    await _owned_activity(supabase, activity_id, organizer)
    return await activities_api.list_participants(supabase, activity_id)


@router.post("", response_model=Activity)
async def create_activity(
    payload: ActivityPayload,
    organizer: OrganizerProfile = Depends(require_organizer),
    supabase: SupabaseClient = Depends(get_supabase),
) -> Activity:
    if not (payload.title or "").strip():
        raise HTTPException(status_code=400, detail="title is required")
    fields = payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    row = await activities_api.create_activity(supabase, organizer.id, fields)
    return Activity.model_validate(row)


@router.patch("/{activity_id}", response_model=Activity)
async def update_activity(
    activity_id: str,
    payload: ActivityPayload,
    organizer: OrganizerProfile = Depends(require_organizer),
    supabase: SupabaseClient = Depends(get_supabase),
) -> Activity:
    await _owned_activity(supabase, activity_id, organizer)
    fields = payload.model_dump(mode="json", by_alias=True, exclude_unset=True)
    if not fields:
        raise HTTPException(status_code=400, detail="No changes supplied.")
    row = await activities_api.update_activity(supabase, activity_id, fields)
    return Activity.model_validate(row)


@router.delete("/{activity_id}")
async def delete_activity(
    activity_id: str,
    organizer: OrganizerProfile = Depends(require_organizer),
    supabase: SupabaseClient = Depends(get_supabase),
) -> dict:
    await _owned_activity(supabase, activity_id, organizer)
    await activities_api.delete_activity(supabase, activity_id)
    return {"deleted": True}
