"""Request functions grouped by entity.

Every function takes the :class:`~kidhub.supabase.SupabaseClient` first,
sends snake_case payloads and hands camelCase results back to callers.
"""
from __future__ import annotations

from typing import Any, Dict, List

from ..errors import NotFoundError

GUARDIANS = "guardians"
ORGANIZERS = "organizers"
CHILDREN = "children"
ACTIVITIES = "activities"
ENROLLMENTS = "enrollments"
REVIEWS = "reviews"

PROFILE_TABLES = {"guardian": GUARDIANS, "organizer": ORGANIZERS}


def first_row(rows: List[Dict[str, Any]], label: str) -> Dict[str, Any]:
    if not rows:
        raise NotFoundError(f"{label} not found")
    return rows[0]
