from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from catcafe_booking.packages.models import PackageType


class BalancesSchema(BaseModel):
    tokens: Decimal
    br15_balance: Decimal
    br30_balance: Decimal
    dp20_balance: int
    br15_expiry: Optional[datetime] = None
    br30_expiry: Optional[datetime] = None
    dp20_expiry: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PackageHistorySchema(BaseModel):
    id: int
    package_type: str
    amount: Decimal
    reason: str
    booking_id: Optional[UUID] = None
    expiry: Optional[datetime] = None
    assigned_by: Optional[UUID] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PackageAssignSchema(BaseModel):
    admin_id: UUID
    user_id: UUID
    package_type: PackageType
    expiry: Optional[datetime] = None
    # Token top-ups only; packages carry a fixed size
    amount: Optional[Decimal] = Field(default=None, gt=0)
    language: Literal["en", "zh"] = "zh"


class AdminOnlySchema(BaseModel):
    admin_id: UUID
