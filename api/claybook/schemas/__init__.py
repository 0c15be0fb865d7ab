"""Pydantic schemas for API serialisation.

Wire payloads are camelCase; Python attributes stay snake_case.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, PlainSerializer
from pydantic.alias_generators import to_camel

# Money is exact internally and a JSON number on the wire.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# --- Availability ---


class CapacityOut(CamelModel):
    booked: int
    max: int
    available: int


class SlotAvailabilityOut(CamelModel):
    available: bool
    capacity: CapacityOut
    message: str
    blocked_reason: str | None = None


class ExperienceSlotOut(CamelModel):
    date: date
    time: str
    available: int
    total: int
    can_book: bool
    instructor: str
    instructor_id: int
    technique: str
    blocked_reason: str | None = None


class ExperienceSearchParams(CamelModel):
    technique: str
    participants: int
    start_date: date
    days_ahead: int


class ExperienceSearchOut(CamelModel):
    success: bool = True
    slots: list[ExperienceSlotOut]
    search_params: ExperienceSearchParams


class PoolAvailabilityOut(CamelModel):
    requested: int
    booked: int
    total: int
    available: int
    blocked: bool


class GroupClassSlotOut(CamelModel):
    date: date
    time: str
    can_book: bool
    potters_wheel: PoolAvailabilityOut | None
    hand_work: PoolAvailabilityOut | None
    blocked_reason: str | None = None


class GroupClassSearchOut(CamelModel):
    success: bool = True
    slots: list[GroupClassSlotOut]


class SessionOut(CamelModel):
    id: str
    date: date
    time: str
    instructor_id: int
    capacity: int
    is_override: bool
    paid_bookings_count: int
    total_bookings_count: int
    technique: str | None = None


class MonthlyAvailabilityOut(CamelModel):
    available: bool


# --- Bookings ---


class TimeSlotIn(CamelModel):
    date: date
    time: str


class TimeSlotOut(CamelModel):
    slot_date: date = Field(serialization_alias="date")
    slot_time: str = Field(serialization_alias="time")
    instructor_id: int | None = None


class BookingCreate(CamelModel):
    product_id: int | None = None
    product_type: str
    technique: str | None = None
    participants: int = Field(default=1, ge=1)
    customer_name: str = Field(min_length=1)
    customer_email: EmailStr
    slots: list[TimeSlotIn] = Field(min_length=1)
    price: Decimal = Field(default=Decimal("0"), ge=0)
    accepted_no_refund: bool = False
    client_note: str | None = None


class AdminBookingCreate(BookingCreate):
    is_paid: bool = False
    override_reason: str | None = None


class BookingOut(CamelModel):
    id: int
    booking_code: str
    product_id: int | None
    product_type: str
    technique: str | None
    participants: int
    customer_name: str
    customer_email: str
    status: str
    source: str
    expires_at: datetime | None
    accepted_no_refund: bool
    price: Money
    is_paid: bool
    payment_details: list[dict[str, Any]]
    client_note: str | None
    slots: list[TimeSlotOut]
    created_at: datetime


class PaymentIn(CamelModel):
    amount: Decimal = Field(gt=0)
    method: str = Field(min_length=1)


class AdminValidateIn(CamelModel):
    date: date
    time: str
    technique: str | None = None
    participants: int = Field(default=1, ge=1)
    product_type: str | None = None


class ValidationIssueOut(CamelModel):
    rule: str
    severity: str
    message: str
    code: str


class ValidationResultOut(CamelModel):
    is_valid: bool
    warnings: list[ValidationIssueOut]
    can_continue_with_warnings: bool
    outcome: str


# --- Overrides ---


class OverrideIn(CamelModel):
    reason: str
    metadata: dict[str, Any] | None = None


class OverrideOut(CamelModel):
    id: str
    booking_id: int
    overridden_by: str
    reason: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_record(cls, record) -> "OverrideOut":
        return cls(
            id=record.id,
            booking_id=record.booking_id,
            overridden_by=record.overridden_by,
            reason=record.reason,
            metadata=record.extra or {},
            created_at=record.created_at,
        )


class AuthorizeOverrideOut(CamelModel):
    success: bool = True
    override: OverrideOut


class AdminBookingOut(CamelModel):
    success: bool = True
    booking: BookingOut
    validation: ValidationResultOut
    override: OverrideOut | None = None


class AdminBookingRejectedOut(CamelModel):
    success: bool = False
    error: str
    validation: ValidationResultOut


# --- Giftcards ---


class HoldCreate(CamelModel):
    amount: Decimal
    code: str | None = None
    giftcard_id: int | None = None
    ttl_minutes: int | None = Field(default=None, gt=0)
    booking_id: int | None = None
    booking_temp_ref: str | None = None
    user_id: str | None = None


class HoldOut(CamelModel):
    id: str
    giftcard_id: int
    amount: Money
    booking_id: int | None
    booking_temp_ref: str | None
    user_id: str | None
    expires_at: datetime | None
    created_at: datetime


class HoldCreateOut(CamelModel):
    success: bool = True
    hold: HoldOut
    available: Money
    balance: Money


class HoldRef(CamelModel):
    hold_id: str = Field(min_length=1)


class ConsumeOut(CamelModel):
    success: bool = True
    giftcard_id: int
    new_balance: Money


class ReleaseOut(CamelModel):
    success: bool = True
    hold_id: str


class CleanupOut(CamelModel):
    success: bool = True
    expired: int


class GiftcardValidateOut(CamelModel):
    success: bool = True
    valid: bool
    code: str
    status: str
    balance: Money
    available: Money
    initial_value: Money | None
    expires_at: datetime | None


# --- Schedule admin ---


class RuleIn(CamelModel):
    day_of_week: int = Field(ge=0, le=6)
    time: str
    instructor_id: int
    capacity: int = Field(gt=0)
    technique: str | None = None
    product_id: int | None = None


class RuleOut(CamelModel):
    id: int
    product_id: int | None
    day_of_week: int
    time: str
    instructor_id: int
    capacity: int
    technique: str | None


class OverrideSessionIn(CamelModel):
    time: str
    instructor_id: int
    capacity: int = Field(gt=0)
    technique: str | None = None


class ScheduleOverrideIn(CamelModel):
    sessions: list[OverrideSessionIn] | None = None
    capacity: int | None = Field(default=None, gt=0)
    product_id: int | None = None


class ScheduleOverrideOut(CamelModel):
    product_id: int | None
    override_date: date
    sessions: list[dict[str, Any]] | None
    capacity: int | None


class TechniqueCapacityIn(CamelModel):
    capacity: int = Field(gt=0)


class TechniqueCapacityOut(CamelModel):
    technique: str
    capacity: int
