import enum
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Uuid, func

from catcafe_booking.database.engine import Base


class PackageType(str, enum.Enum):
    TOKEN = "token"
    BR15 = "br15"
    BR30 = "br30"
    DP20 = "dp20"


class LedgerReason(str, enum.Enum):
    ASSIGNED = "assigned"
    BOOKING_DEBIT = "booking_debit"
    BOOKING_REFUND = "booking_refund"
    EXPIRED = "expired"


# Balance column and expiry column per package; tokens never expire
BALANCE_FIELDS = {
    PackageType.TOKEN: ("tokens", None),
    PackageType.BR15: ("br15_balance", "br15_expiry"),
    PackageType.BR30: ("br30_balance", "br30_expiry"),
    PackageType.DP20: ("dp20_balance", "dp20_expiry"),
}

# Units credited by assigning one package
PACKAGE_SIZES = {
    PackageType.BR15: 15,
    PackageType.BR30: 30,
    PackageType.DP20: 20,
}


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String, nullable=False, unique=True)
    full_name = Column(String)
    phone = Column(String)
    is_admin = Column(Boolean, nullable=False, default=False)

    # Cached aggregates of package_history
    tokens = Column(Numeric(10, 2), nullable=False, default=0)
    br15_balance = Column(Numeric(10, 2), nullable=False, default=0)
    br30_balance = Column(Numeric(10, 2), nullable=False, default=0)
    dp20_balance = Column(Integer, nullable=False, default=0)
    br15_expiry = Column(DateTime)
    br30_expiry = Column(DateTime)
    dp20_expiry = Column(DateTime)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)


class PackageHistory(Base):
    __tablename__ = "package_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    package_type = Column(String, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)  # signed
    reason = Column(String, nullable=False)
    booking_id = Column(Uuid, ForeignKey("bookings.id"), nullable=True)
    expiry = Column(DateTime)
    assigned_by = Column(Uuid)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
