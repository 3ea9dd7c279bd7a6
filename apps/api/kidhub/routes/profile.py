import logging
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException

from ..auth_store import AuthStore
from ..data import guardians as guardians_api
from ..deps import get_auth_store, require_guardian, require_user
from ..schemas import CamelModel, GuardianProfile, UserRecord

router = APIRouter(prefix="/api/v1/profile", tags=["profile"])
logger = logging.getLogger(__name__)


class ChildPayload(CamelModel):
    id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[date] = None


class ProfileUpdatePayload(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    organization_name: Optional[str] = None
    contact_name: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    children: Optional[List[ChildPayload]] = None
    deleted_child_ids: Optional[List[str]] = None


GUARDIAN_FIELDS = {"firstName", "lastName", "phone"}
ORGANIZER_FIELDS = {"organizationName", "contactName", "description", "website", "phone"}


def _user_body(user: UserRecord) -> Dict[str, Any]:
    return user.model_dump(mode="json", by_alias=True)


@router.get("")
async def get_profile(user: UserRecord = Depends(require_user)) -> Dict[str, Any]:
    return _user_body(user)


@router.patch("")
async def update_profile(
    payload: ProfileUpdatePayload,
    user: UserRecord = Depends(require_user),
    store: AuthStore = Depends(get_auth_store),
) -> Dict[str, Any]:
    body = payload.model_dump(mode="json", by_alias=True, exclude_unset=True)
    allowed = GUARDIAN_FIELDS if isinstance(user, GuardianProfile) else ORGANIZER_FIELDS
    fields = {key: value for key, value in body.items() if key in allowed}
    children = body.get("children")
    if children is not None and not isinstance(user, GuardianProfile):
        raise HTTPException(status_code=400, detail="Only guardians have children.")
    if isinstance(user, GuardianProfile):
        owned = {child.id for child in user.children}
        submitted = {child["id"] for child in children or [] if child.get("id")}
        submitted.update(body.get("deletedChildIds") or [])
        if not submitted <= owned:
            raise HTTPException(status_code=404, detail="Child not found.")
    logger.info(
        "profile update",
        extra={"user_id": user.id, "fields": sorted(fields), "children": len(children or [])},
    )
    updated = await store.update_profile(
        fields,
        children=[{k: v for k, v in child.items() if v is not None} for child in children or []],
        deleted_child_ids=body.get("deletedChildIds"),
    )
    return _user_body(updated)


@router.post("/children")
async def add_child(
    payload: ChildPayload,
    guardian: GuardianProfile = Depends(require_guardian),
    store: AuthStore = Depends(get_auth_store),
) -> Dict[str, Any]:
    if not (payload.first_name or "").strip():
        raise HTTPException(status_code=400, detail="firstName is required")
    fields = payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    fields.pop("id", None)
    child = await guardians_api.add_child(store.supabase, guardian.id, fields)
    await store.reconcile(force_profile_refresh=True)
    return child


@router.patch("/children/{child_id}")
async def update_child(
    child_id: str,
    payload: ChildPayload,
    guardian: GuardianProfile = Depends(require_guardian),
    store: AuthStore = Depends(get_auth_store),
) -> Dict[str, Any]:
    if child_id not in {child.id for child in guardian.children}:
        raise HTTPException(status_code=404, detail="Child not found.")
    fields = payload.model_dump(mode="json", by_alias=True, exclude_unset=True)
    child = await guardians_api.update_child(store.supabase, child_id, fields)
    await store.reconcile(force_profile_refresh=True)
    return child


@router.delete("/children/{child_id}")
async def delete_child(
    child_id: str,
    guardian: GuardianProfile = Depends(require_guardian),
    store: AuthStore = Depends(get_auth_store),
) -> Dict[str, Any]:
    if child_id not in {child.id for child in guardian.children}:
        raise HTTPException(status_code=404, detail="Child not found.")
    await guardians_api.delete_child(store.supabase, child_id)
    await store.reconcile(force_profile_refresh=True)
    return {"deleted": True}
