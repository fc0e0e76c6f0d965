from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from catcafe_booking.bookings.models import BookingType, PaymentMethod

HHMM = r"^([01]\d|2[0-3]):[0-5]\d$"
OTHER_PURPOSE = "other"

Language = Literal["en", "zh"]


class EquipmentItemSchema(BaseModel):
    type: str = Field(min_length=1)
    quantity: int

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v):
        if v <= 0:
            raise ValueError("Equipment quantity must be greater than 0.")
        return v


class BookingCreateSchema(BaseModel):
    user_id: UUID
    room_id: int
    booking_date: date
    start_time: str = Field(pattern=HHMM)
    end_time: str = Field(pattern=HHMM)
    booking_type: BookingType = BookingType.HOURLY
    payment_method: PaymentMethod
    guests: int = Field(default=1, ge=1)
    purpose: list[str]
    other_purpose: Optional[str] = None
    equipment: list[EquipmentItemSchema]
    special_requests: Optional[str] = None
    wants_projector: bool = False
    language: Language = "zh"

    @model_validator(mode="after")
    def check_request(self):
        if not [p for p in self.purpose if p.strip()]:
            raise ValueError("Please select at least one purpose.")
        if OTHER_PURPOSE in self.purpose and not (self.other_purpose or "").strip():
            raise ValueError("Please describe the other purpose.")
        if not self.equipment:
            raise ValueError("Please select at least one equipment item.")
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time.")
        return self

    def purpose_text(self) -> str:
        parts = []
        for p in self.purpose:
            if p == OTHER_PURPOSE:
                parts.append(f"{OTHER_PURPOSE}: {self.other_purpose.strip()}")
            elif p.strip():
                parts.append(p.strip())
        return ", ".join(parts)


class AdminBookingCreateSchema(BaseModel):
    admin_id: UUID
    user_id: UUID
    room_id: int
    booking_date: date
    start_time: str = Field(pattern=HHMM)
    end_time: str = Field(pattern=HHMM)
    booking_type: BookingType = BookingType.HOURLY
    payment_method: PaymentMethod = PaymentMethod.CASH
    guests: int = Field(default=1, ge=1)
    purpose: str = ""
    equipment: list[EquipmentItemSchema] = []
    special_requests: Optional[str] = None
    wants_projector: bool = False
    admin_notes: Optional[str] = None
    send_email: bool = False
    language: Language = "zh"


class BookingUpdateSchema(BaseModel):
    admin_id: UUID
    booking_date: Optional[date] = None
    start_time: Optional[str] = Field(default=None, pattern=HHMM)
    end_time: Optional[str] = Field(default=None, pattern=HHMM)
    guests: Optional[int] = Field(default=None, ge=1)
    special_requests: Optional[str] = None
    admin_notes: Optional[str] = None


class BookingCancelSchema(BaseModel):
    actor_id: UUID
    reason: Optional[str] = None
    should_refund: bool = True
    language: Language = "zh"


class MarkPaidSchema(BaseModel):
    admin_id: UUID
    admin_notes: Optional[str] = None
    language: Language = "zh"


class AdminActionSchema(BaseModel):
    admin_id: UUID
    language: Language = "zh"


class BookingSchema(BaseModel):
    id: UUID
    user_id: UUID
    room_id: int
    start_time: datetime
    end_time: datetime
    booking_type: str
    payment_method: str
    payment_status: str
    status: str
    total_cost: Decimal
    purpose: str
    guests: int
    equipment: list[dict] = []
    special_requests: Optional[str] = None
    wants_projector: bool
    created_by_admin: bool
    receipt_path: Optional[str] = None
    receipt_uploaded_at: Optional[datetime] = None
    payment_confirmed_at: Optional[datetime] = None
    payment_confirmed_by: Optional[UUID] = None
    admin_notes: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[UUID] = None
    cancellation_hours_before: Optional[int] = None
    cancellation_reason: Optional[str] = None
    cancellation_reviewed: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
