"""Guardian / organizer profile rows."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from uuid import uuid4

from ..case import keys_to_camel, keys_to_snake
from ..config import get_config
from ..errors import ProfileNotFoundError, SupabaseError
from ..phone import international_to_national, national_to_international
from ..schemas import (
    USER_RECORD_ADAPTER,
    GuardianMetadata,
    OrganizerMetadata,
    UserKind,
    UserRecord,
)
from ..supabase import SupabaseClient, eq, in_
from . import CHILDREN, PROFILE_TABLES
from .guardians import list_children

logger = logging.getLogger(__name__)


def _to_storage_phone(phone: Optional[str]) -> str:
    return national_to_international(phone or "", country_code=get_config().phone_country_code)


def _to_display_phone(phone: Optional[str]) -> str:
    return international_to_national(phone or "", country_code=get_config().phone_country_code)


def build_profile(
    row: Dict[str, Any],
    user_id: str,
    user_type: UserKind,
    children: Optional[List[Dict[str, Any]]] = None,
) -> UserRecord:
    """Merge a camelCase profile row with the session identity into a User Record."""

    data = {**row, "id": user_id, "userType": user_type}
    data["phone"] = _to_display_phone(data.get("phone"))
    if user_type == "guardian":
        data["children"] = children or []
    else:
        data.pop("children", None)
    return USER_RECORD_ADAPTER.validate_python(data)


def minimal_profile_row(
    user_id: str,
    email: Optional[str],
    metadata: GuardianMetadata | OrganizerMetadata,
) -> Dict[str, Any]:
    """Smallest row that provisions a profile partition for a new account."""

    if isinstance(metadata, OrganizerMetadata):
        return {
            "id": user_id,
            "email": email or "",
            "organizationName": metadata.organization_name or "",
            "contactName": metadata.contact_name or "",
            "description": metadata.description or "",
            "phone": metadata.phone or "",
            "website": metadata.website or "",
        }
    return {
        "id": user_id,
        "email": email or "",
        "firstName": metadata.first_name or "",
        "lastName": metadata.last_name or "",
        "phone": metadata.phone or "",
    }


async def fetch_profile_row(
    supabase: SupabaseClient,
    user_id: str,
    user_type: UserKind,
) -> Optional[Dict[str, Any]]:
    row = await supabase.select_one(
        PROFILE_TABLES[user_type],
        {"select": "*", "id": eq(user_id)},
    )
    return keys_to_camel(row) if row else None


async def fetch_children_or_empty(supabase: SupabaseClient, guardian_id: str) -> List[Dict[str, Any]]:
    try:
        return await list_children(supabase, guardian_id)
    except SupabaseError as exc:
        logger.warning(
            "children fetch failed, continuing without them",
            extra={"guardian_id": guardian_id, "status": exc.status_code},
        )
        return []


async def fetch_profile(
    supabase: SupabaseClient,
    user_id: str,
    user_type: UserKind,
) -> UserRecord:
    """Return the full profile, children included for guardians."""

    row = await fetch_profile_row(supabase, user_id, user_type)
    if row is None:
        raise ProfileNotFoundError(user_id, user_type)
    children = None
    if user_type == "guardian":
        children = await fetch_children_or_empty(supabase, user_id)
    return build_profile(row, user_id, user_type, children)


async def upsert_profile_row(
    supabase: SupabaseClient,
    user_type: UserKind,
    row: Dict[str, Any],
) -> List[Dict[str, Any]]:
    payload = {**row, "phone": _to_storage_phone(row.get("phone"))}
    rows = await supabase.upsert(
        PROFILE_TABLES[user_type],
        keys_to_snake(payload),
        on_conflict="id",
    )
    return keys_to_camel(rows)


async def update_profile(
    supabase: SupabaseClient,
    user_id: str,
    user_type: UserKind,
    fields: Dict[str, Any],
    children: Optional[List[Dict[str, Any]]] = None,
    deleted_child_ids: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Update the profile row and, for guardians, sync the children list.

    Children with an ``id`` are updated only where they already belong to
    ``user_id``, children without one are inserted under a fresh uuid, and
    ``deleted_child_ids`` are removed.
    """

    payload = dict(fields)
    for key in ("id", "userType", "children", "email"):
        payload.pop(key, None)
    if "phone" in payload:
        payload["phone"] = _to_storage_phone(payload["phone"])

    rows = await supabase.update(
        PROFILE_TABLES[user_type],
        keys_to_snake(payload),
        {"id": eq(user_id)},
    )

    if user_type == "guardian":
        if deleted_child_ids:
            logger.info(
                "deleting children",
                extra={"guardian_id": user_id, "count": len(deleted_child_ids)},
            )
            await supabase.delete(
                CHILDREN,
                {"id": in_(deleted_child_ids), "guardian_id": eq(user_id)},
            )

        existing = [child for child in children or [] if child.get("id")]
        new = [child for child in children or [] if not child.get("id")]
        for child in existing:
            child_fields = {key: value for key, value in child.items() if key not in {"id", "guardianId"}}
            await supabase.update(
                CHILDREN,
                keys_to_snake(child_fields),
                {"id": eq(child["id"]), "guardian_id": eq(user_id)},
            )
        if new:
            await supabase.insert(
                CHILDREN,
                [keys_to_snake({**child, "id": str(uuid4()), "guardianId": user_id}) for child in new],
            )
        logger.info(
            "guardian children synced",
            extra={"guardian_id": user_id, "updated": len(existing), "inserted": len(new)},
        )

    return keys_to_camel(rows[0]) if rows else {}
