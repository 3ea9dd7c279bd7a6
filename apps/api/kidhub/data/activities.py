from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from ..case import keys_to_camel, keys_to_snake
from ..errors import SupabaseError
from ..supabase import SupabaseClient, eq
from . import ACTIVITIES, ENROLLMENTS, GUARDIANS, first_row

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "All Events"
GUARDIAN_CONTACT_COLUMNS = "id,first_name,last_name,email,phone"


class ActivityFilters(BaseModel):
    category: Optional[str] = None
    date: Optional[str] = None
    location: Optional[str] = None
    search: Optional[str] = None


def _quoted(value: str) -> str:
    # Values inside or=(...) that contain , . : ( ) must be double-quoted.
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _filter_params(filters: Optional[ActivityFilters]) -> Dict[str, Any]:
    params: Dict[str, Any] = {
        "select": "*,organizers(id,organization_name,contact_name,email,phone)",
        "status": eq("active"),
    }
    if filters is None:
        return params
    if filters.category and filters.category != ALL_CATEGORIES:
        params["category"] = eq(filters.category)
    if filters.date:
        params["date"] = eq(filters.date)
    if filters.location:
        params["location"] = f"ilike.*{filters.location}*"
    if filters.search:
        term = _quoted(f"*{filters.search}*")
        params["or"] = f"(title.ilike.{term},description.ilike.{term})"
    return params


async def list_activities(
    supabase: SupabaseClient,
    filters: Optional[ActivityFilters] = None,
) -> List[Dict[str, Any]]:
    """Active activities with their organizer, narrowed by the browse filters."""
    rows = await supabase.select(ACTIVITIES, _filter_params(filters))
    return keys_to_camel(rows)


async def list_organizer_activities(supabase: SupabaseClient, organizer_id: str) -> List[Dict[str, Any]]:
    rows = await supabase.select(ACTIVITIES, {"select": "*", "organizer_id": eq(organizer_id)})
    return keys_to_camel(rows)


async def get_activity(supabase: SupabaseClient, activity_id: str) -> Optional[Dict[str, Any]]:
    try:
        row = await supabase.select_one(
            ACTIVITIES,
            {"select": "*,organizers(*)", "id": eq(activity_id)},
        )
    except SupabaseError:
        logger.exception("activity fetch failed", extra={"activity_id": activity_id})
        return None
    return keys_to_camel(row) if row else None


async def create_activity(
    supabase: SupabaseClient,
    organizer_id: str,
    fields: Dict[str, Any],
) -> Dict[str, Any]:
    payload = {**fields, "organizerId": organizer_id}
    rows = await supabase.insert(ACTIVITIES, keys_to_snake(payload))
    return keys_to_camel(first_row(rows, "activity"))


async def update_activity(
    supabase: SupabaseClient,
    activity_id: str,
    fields: Dict[str, Any],
) -> Dict[str, Any]:
    payload = {key: value for key, value in fields.items() if key not in {"id", "organizerId"}}
    rows = await supabase.update(ACTIVITIES, keys_to_snake(payload), {"id": eq(activity_id)})
    return keys_to_camel(first_row(rows, "activity"))


async def delete_activity(supabase: SupabaseClient, activity_id: str) -> bool:
    await supabase.delete(ACTIVITIES, {"id": eq(activity_id)})
    return True


async def fetch_guardian_contact(
    supabase: SupabaseClient,
    guardian_id: Optional[str],
) -> Optional[Dict[str, Any]]:
    """Guardian contact columns for an enrollment row; None when unavailable."""
    if not guardian_id:
        return None
    try:
        return await supabase.select_one(
            GUARDIANS,
            {"select": GUARDIAN_CONTACT_COLUMNS, "id": eq(guardian_id)},
        )
    except SupabaseError:
        logger.exception("guardian fetch failed", extra={"guardian_id": guardian_id})
        return None


async def list_participants(supabase: SupabaseClient, activity_id: str) -> List[Dict[str, Any]]:
    rows = await supabase.select(
        ENROLLMENTS,
        {"select": "*,children(*)", "activity_id": eq(activity_id)},
    )
    guardians = await asyncio.gather(
        *(fetch_guardian_contact(supabase, row.get("guardian_id")) for row in rows)
    )
    return keys_to_camel(
        [{**row, "guardian": guardian} for row, guardian in zip(rows, guardians)]
    )
