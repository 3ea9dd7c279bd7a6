from __future__ import annotations

from typing import Any, Dict, List
from uuid import uuid4

from ..case import keys_to_camel, keys_to_snake
from ..errors import NotFoundError
from ..supabase import SupabaseClient, eq
from . import CHILDREN, ENROLLMENTS, first_row


async def list_children(supabase: SupabaseClient, guardian_id: str) -> List[Dict[str, Any]]:
    """Children of a guardian, newest first."""
    rows = await supabase.select(
        CHILDREN,
        {"select": "*", "guardian_id": eq(guardian_id), "order": "created_at.desc"},
    )
    return keys_to_camel(rows)


async def get_child(supabase: SupabaseClient, child_id: str) -> Dict[str, Any]:
    row = await supabase.select_one(CHILDREN, {"select": "*", "id": eq(child_id)})
    if row is None:
        raise NotFoundError("child not found")
    return keys_to_camel(row)


async def add_child(
    supabase: SupabaseClient,
    guardian_id: str,
    child: Dict[str, Any],
) -> Dict[str, Any]:
    payload = {**child, "id": str(uuid4()), "guardianId": guardian_id}
    rows = await supabase.insert(CHILDREN, keys_to_snake(payload))
    return keys_to_camel(first_row(rows, "child"))


async def update_child(
    supabase: SupabaseClient,
    child_id: str,
    fields: Dict[str, Any],
) -> Dict[str, Any]:
    payload = {key: value for key, value in fields.items() if key != "id"}
    rows = await supabase.update(CHILDREN, keys_to_snake(payload), {"id": eq(child_id)})
    return keys_to_camel(first_row(rows, "child"))


async def delete_child(supabase: SupabaseClient, child_id: str) -> bool:
    await supabase.delete(CHILDREN, {"id": eq(child_id)})
    return True


async def list_guardian_enrollments(supabase: SupabaseClient, guardian_id: str) -> List[Dict[str, Any]]:
    rows = await supabase.select(
        ENROLLMENTS,
        {"select": "*,activities(*),children(*)", "guardian_id": eq(guardian_id)},
    )
    return keys_to_camel(rows)
