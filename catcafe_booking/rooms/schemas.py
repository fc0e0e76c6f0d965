from datetime import date, datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CashPricesSchema(BaseModel):
    hourly: Optional[float] = None
    daily: Optional[float] = None
    monthly: Optional[float] = None


class RoomPricesSchema(BaseModel):
    cash: CashPricesSchema = Field(default_factory=CashPricesSchema)


class RoomSchema(BaseModel):
    id: int
    name: str
    capacity: int
    prices: RoomPricesSchema
    booking_options: list[Literal["token", "cash", "dp20"]] = []
    hidden: bool = False

    model_config = ConfigDict(from_attributes=True)


class RoomUpdateSchema(BaseModel):
    admin_id: UUID
    name: Optional[str] = None
    capacity: Optional[int] = Field(default=None, ge=1)
    prices: Optional[RoomPricesSchema] = None
    booking_options: Optional[list[Literal["token", "cash", "dp20"]]] = None
    hidden: Optional[bool] = None


class AvailableDateSchema(BaseModel):
    id: int
    available_date: date
    room_id: Optional[int] = None
    reason: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class OpenDateSchema(BaseModel):
    admin_id: UUID
    available_date: date
    room_id: Optional[int] = None
    reason: Optional[str] = None


class DateRangeSchema(BaseModel):
    admin_id: UUID
    start_date: date
    end_date: date
    room_id: Optional[int] = None
    reason: Optional[str] = None

    @model_validator(mode="after")
    def check_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date.")
        return self
