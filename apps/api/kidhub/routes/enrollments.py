from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from ..data import enrollments as enrollments_api
from ..data.guardians import list_guardian_enrollments
from ..deps import get_supabase, require_guardian, require_organizer, require_user
from ..schemas import (
    CamelModel,
    EmergencyContact,
    Enrollment,
    EnrollmentStatus,
    GuardianProfile,
    OrganizerProfile,
    PaymentStatus,
    UserRecord,
)
from ..supabase import SupabaseClient

router = APIRouter(prefix="/api/v1/enrollments", tags=["enrollments"])


class EnrollPayload(CamelModel):
    activity_id: str
    child_id: str
    emergency_contact: Optional[EmergencyContact] = None


class StatusPayload(CamelModel):
    status: EnrollmentStatus


class PaymentPayload(CamelModel):
    payment_status: PaymentStatus


async def _organizer_enrollment(
    supabase: SupabaseClient,
    enrollment_id: str,
    organizer: OrganizerProfile,
) -> dict:
    existing = await enrollments_api.get_enrollment(supabase, enrollment_id)
    if (existing.get("activities") or {}).get("organizerId") != organizer.id:
        raise HTTPException(status_code=403, detail="Enrollment access denied.")
    return existing


@router.get("", response_model=List[Enrollment])
async def list_my_enrollments(
    guardian: GuardianProfile = Depends(require_guardian),
    supabase: SupabaseClient = Depends(get_supabase),
) -> List[Enrollment]:
    rows = await list_guardian_enrollments(supabase, guardian.id)
    return [Enrollment.model_validate(row) for row in rows]


@router.post("", response_model=Enrollment)
async def enroll(
    payload: EnrollPayload,
    guardian: GuardianProfile = Depends(require_guardian),
    supabase: SupabaseClient = Depends(get_supabase),
) -> Enrollment:
    if payload.child_id not in {child.id for child in guardian.children}:
        raise HTTPException(status_code=400, detail="Unknown child for this guardian.")
    row = await enrollments_api.enroll_child(
        supabase,
        payload.activity_id,
        child_id=payload.child_id,
        guardian_id=guardian.id,
        emergency_contact=payload.emergency_contact.model_dump() if payload.emergency_contact else None,
    )
    return Enrollment.model_validate(row)


@router.get("/{enrollment_id}", response_model=Enrollment)
async def get_enrollment(
    enrollment_id: str,
    user: UserRecord = Depends(require_user),
    supabase: SupabaseClient = Depends(get_supabase),
) -> Enrollment:
    row = await enrollments_api.get_enrollment(supabase, enrollment_id)
    activity_owner = (row.get("activities") or {}).get("organizerId")
    if user.id not in {row.get("guardianId"), activity_owner}:
        raise HTTPException(status_code=403, detail="Enrollment access denied.")
    return Enrollment.model_validate(row)


@router.post("/{enrollment_id}/cancel", response_model=Enrollment)
async def cancel_enrollment(
    enrollment_id: str,
    guardian: GuardianProfile = Depends(require_guardian),
    supabase: SupabaseClient = Depends(get_supabase),
) -> Enrollment:
    existing = await enrollments_api.get_enrollment(supabase, enrollment_id)
    if existing.get("guardianId") != guardian.id:
        raise HTTPException(status_code=403, detail="Enrollment access denied.")
    row = await enrollments_api.cancel_enrollment(supabase, enrollment_id)
    return Enrollment.model_validate(row)


@router.patch("/{enrollment_id}/status", response_model=Enrollment)
async def update_status(
    enrollment_id: str,
    payload: StatusPayload,
    organizer: OrganizerProfile = Depends(require_organizer),
    supabase: SupabaseClient = Depends(get_supabase),
) -> Enrollment:
    await _organizer_enrollment(supabase, enrollment_id, organizer)
    row = await enrollments_api.update_enrollment_status(supabase, enrollment_id, payload.status)
    return Enrollment.model_validate(row)


@router.patch("/{enrollment_id}/payment", response_model=Enrollment)
async def update_payment(
    enrollment_id: str,
    payload: PaymentPayload,
    organizer: OrganizerProfile = Depends(require_organizer),
    supabase: SupabaseClient = Depends(get_supabase),
) -> Enrollment:
    await _organizer_enrollment(supabase, enrollment_id, organizer)
    row = await enrollments_api.update_payment_status(supabase, enrollment_id, payload.payment_status)
    return Enrollment.model_validate(row)
