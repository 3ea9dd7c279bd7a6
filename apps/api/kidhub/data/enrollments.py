from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from ..case import keys_to_camel, keys_to_snake
from ..config import get_config
from ..errors import CapacityReachedError, NotFoundError
from ..phone import national_to_international
from ..schemas import EnrollmentStatus, PaymentStatus
from ..supabase import SupabaseClient, eq
from . import ACTIVITIES, ENROLLMENTS, first_row
from .activities import fetch_guardian_contact

logger = logging.getLogger(__name__)


def _confirmation_code() -> str:
    return uuid4().hex[:8].upper()


async def enroll_child(
    supabase: SupabaseClient,
    activity_id: str,
    *,
    child_id: str,
    guardian_id: str,
    emergency_contact: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Create a confirmed enrollment, refusing when the activity is full.

    A capacity of 0 means unlimited.
    """

    activity = await supabase.select_one(
        ACTIVITIES,
        {"select": "id,capacity", "id": eq(activity_id)},
    )
    if activity is None:
        raise NotFoundError("activity not found")

    capacity = activity.get("capacity") or 0
    if capacity > 0:
        confirmed = await supabase.count(
            ENROLLMENTS,
            {"activity_id": eq(activity_id), "status": eq(EnrollmentStatus.CONFIRMED.value)},
        )
        if confirmed >= capacity:
            logger.info(
                "enrollment refused, activity full",
                extra={"activity_id": activity_id, "capacity": capacity},
            )
            raise CapacityReachedError(activity_id)

    payload: Dict[str, Any] = {
        "activityId": activity_id,
        "childId": child_id,
        "guardianId": guardian_id,
        "status": EnrollmentStatus.CONFIRMED.value,
        "paymentStatus": PaymentStatus.UNPAID.value,
        "confirmationCode": _confirmation_code(),
        "registrationDate": datetime.now(tz=timezone.utc).isoformat(),
    }
    if emergency_contact:
        payload["emergencyContact"] = {
            "name": emergency_contact.get("name", ""),
            "phone": national_to_international(
                emergency_contact.get("phone", ""),
                country_code=get_config().phone_country_code,
            ),
        }
    rows = await supabase.insert(ENROLLMENTS, keys_to_snake(payload))
    return keys_to_camel(first_row(rows, "enrollment"))


async def get_enrollment(supabase: SupabaseClient, enrollment_id: str) -> Dict[str, Any]:
    row = await supabase.select_one(
        ENROLLMENTS,
        {"select": "*,activities(*),children(*)", "id": eq(enrollment_id)},
    )
    if row is None:
        raise NotFoundError("enrollment not found")
    guardian = await fetch_guardian_contact(supabase, row.get("guardian_id"))
    return keys_to_camel({**row, "guardian": guardian})


async def update_enrollment_status(
    supabase: SupabaseClient,
    enrollment_id: str,
    status: EnrollmentStatus,
) -> Dict[str, Any]:
    rows = await supabase.update(
        ENROLLMENTS,
        {"status": EnrollmentStatus(status).value},
        {"id": eq(enrollment_id)},
    )
    return keys_to_camel(first_row(rows, "enrollment"))


async def cancel_enrollment(supabase: SupabaseClient, enrollment_id: str) -> Dict[str, Any]:
    return await update_enrollment_status(supabase, enrollment_id, EnrollmentStatus.CANCELLED)


async def update_payment_status(
    supabase: SupabaseClient,
    enrollment_id: str,
    payment_status: PaymentStatus,
) -> Dict[str, Any]:
    rows = await supabase.update(
        ENROLLMENTS,
        {"payment_status": PaymentStatus(payment_status).value},
        {"id": eq(enrollment_id)},
    )
    return keys_to_camel(first_row(rows, "enrollment"))
