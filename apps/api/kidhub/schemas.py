"""Pydantic schemas shared across the API.

Attributes are snake_case; every model also accepts (and dumps, with
``by_alias=True``) the camelCase keys produced by :mod:`kidhub.case`.
"""
from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .case import to_camel

UserKind = Literal["guardian", "organizer"]

USER_KINDS = ("guardian", "organizer")


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Child(CamelModel):
    id: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    date_of_birth: Optional[date] = None
    age: Optional[int] = None
    guardian_id: Optional[str] = None
    created_at: Optional[datetime] = None


class GuardianProfile(CamelModel):
    user_type: Literal["guardian"] = "guardian"
    id: str
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    children: List[Child] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrganizerProfile(CamelModel):
    user_type: Literal["organizer"] = "organizer"
    id: str
    email: str = ""
    organization_name: str = ""
    contact_name: str = ""
    description: str = ""
    website: Optional[str] = None
    phone: str = ""
    year_established: Optional[int] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


UserRecord = Annotated[
    Union[GuardianProfile, OrganizerProfile],
    Field(discriminator="user_type"),
]

USER_RECORD_ADAPTER: TypeAdapter = TypeAdapter(UserRecord)


class GuardianMetadata(CamelModel):
    """Sign-up fields a guardian account carries as provider-side metadata."""

    user_type: Literal["guardian"] = "guardian"
    first_name: str = ""
    last_name: str = ""
    phone: str = ""


class OrganizerMetadata(CamelModel):
    user_type: Literal["organizer"] = "organizer"
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    organization_name: str = ""
    contact_name: str = ""
    description: str = ""
    website: Optional[str] = None


UserMetadata = Annotated[
    Union[GuardianMetadata, OrganizerMetadata],
    Field(discriminator="user_type"),
]

USER_METADATA_ADAPTER: TypeAdapter = TypeAdapter(UserMetadata)


def parse_user_metadata(raw: Optional[Mapping[str, Any]]) -> Union[GuardianMetadata, OrganizerMetadata]:
    """Read provider metadata, treating a missing or unknown kind as guardian."""

    data: Dict[str, Any] = dict(raw or {})
    kind = data.get("userType", data.get("user_type"))
    data.pop("user_type", None)
    data["userType"] = kind if kind in USER_KINDS else "guardian"
    return USER_METADATA_ADAPTER.validate_python(data)


class SessionState(CamelModel):
    model_config = ConfigDict(frozen=True)

    user: Optional[UserRecord] = None
    is_authenticated: bool = False
    user_type: Optional[UserKind] = None
    is_loading: bool = True


PERSISTED_STATE_FIELDS = {"user", "is_authenticated", "user_type"}


class ActivityStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Activity(CamelModel):
    id: str
    title: str
    description: str = ""
    long_description: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    location: str = ""
    age_group: str = ""
    category: str = ""
    capacity: int = 0
    registrations: Optional[int] = None
    price: Optional[str] = None
    is_paid: Optional[bool] = None
    status: ActivityStatus = ActivityStatus.DRAFT
    image_url: Optional[str] = None
    organizer_id: str
    organizers: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class EnrollmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


class EmergencyContact(CamelModel):
    name: str = ""
    phone: str = ""


class Enrollment(CamelModel):
    id: str
    activity_id: str
    child_id: str
    guardian_id: str
    status: EnrollmentStatus = EnrollmentStatus.PENDING
    payment_status: Optional[PaymentStatus] = None
    confirmation_code: Optional[str] = None
    registration_date: Optional[datetime] = None
    emergency_contact: Optional[EmergencyContact] = None
    activities: Optional[Dict[str, Any]] = None
    children: Optional[Dict[str, Any]] = None
    guardian: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Review(CamelModel):
    id: str
    activity_id: str
    guardian_id: str
    organizer_id: Optional[str] = None
    rating: int = Field(ge=1, le=5)
    comment: str = ""
    date: Optional[datetime] = None
    guardians: Optional[Dict[str, Any]] = None
    activities: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
