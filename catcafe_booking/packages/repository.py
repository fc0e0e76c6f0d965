import logging
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from fastapi import Depends
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from catcafe_booking.bookings.models import OutboxEvent, PaymentMethod
from catcafe_booking.database.engine import get_async_session
from catcafe_booking.exceptions import (
    AdminRequiredError, BookingValidationError, InsufficientBalanceError,
    PackageExpiredError, UserNotFoundError,
)
from catcafe_booking.packages.models import (
    BALANCE_FIELDS, PACKAGE_SIZES, LedgerReason, PackageHistory, PackageType, User,
)
from catcafe_booking.timeutils import utcnow

logger = logging.getLogger(__name__)


class PackageRepository:
    """Per-user balances and the package_history ledger behind them."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, user_id: UUID, lock: bool = False) -> User:
        query = select(User).where(User.id == user_id)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        user = result.scalar_one_or_none()
        if user is None:
            raise UserNotFoundError()
        return user

    async def require_admin(self, actor_id: UUID) -> User:
        user = await self.get_user(actor_id)
        if not user.is_admin:
            raise AdminRequiredError()
        return user

    @staticmethod
    def balances(user: User) -> dict:
        return {
            "tokens": user.tokens,
            "br15_balance": user.br15_balance,
            "br30_balance": user.br30_balance,
            "dp20_balance": user.dp20_balance,
            "br15_expiry": user.br15_expiry,
            "br30_expiry": user.br30_expiry,
            "dp20_expiry": user.dp20_expiry,
        }

    @staticmethod
    def ensure_balance(user: User, package: PackageType, required: Decimal,
                       now: datetime | None = None) -> None:
        balance_field, expiry_field = BALANCE_FIELDS[package]
        available = Decimal(getattr(user, balance_field) or 0)
        if available < required:
            raise InsufficientBalanceError(package.value, required, available)

        expiry = getattr(user, expiry_field) if expiry_field else None
        # Day passes are only valid with an expiry on record
        if expiry is None and package is PackageType.DP20:
            raise PackageExpiredError(package.value)
        if expiry is not None and expiry <= (now or utcnow()):
            raise PackageExpiredError(package.value)

    def _apply(self, user: User, package: PackageType, amount: Decimal, reason: LedgerReason,
               booking_id: UUID | None = None, expiry: datetime | None = None,
               assigned_by: UUID | None = None) -> None:
        balance_field, _ = BALANCE_FIELDS[package]
        current = getattr(user, balance_field) or 0
        if package is PackageType.DP20:
            new_balance = int(current) + int(amount)
        else:
            new_balance = Decimal(current) + amount
        if new_balance < 0:
            raise InsufficientBalanceError(package.value, -amount, Decimal(current))

        setattr(user, balance_field, new_balance)
        self.db.add(PackageHistory(
            user_id=user.id,
            package_type=package.value,
            amount=amount,
            reason=reason.value,
            booking_id=booking_id,
            expiry=expiry,
            assigned_by=assigned_by,
        ))

    def debit(self, user: User, package: PackageType, units: Decimal, booking_id: UUID | None = None) -> None:
        """Debit inside the caller's transaction; the caller commits."""
        self.ensure_balance(user, package, units)
        self._apply(user, package, -units, LedgerReason.BOOKING_DEBIT, booking_id=booking_id)

    async def _refund(self, user_id: UUID, package: PackageType, amount: Decimal,
                      booking_id: UUID | None) -> User:
        user = await self.get_user(user_id, lock=True)
        self._apply(user, package, amount, LedgerReason.BOOKING_REFUND, booking_id=booking_id)
        await self.db.commit()
        await self.db.refresh(user)
        logger.info("Refunded %s %s to user %s (booking %s)", amount, package.value, user_id, booking_id)
        return user

    async def add_tokens(self, user_id: UUID, amount: Decimal, booking_id: UUID | None = None) -> User:
        return await self._refund(user_id, PackageType.TOKEN, Decimal(amount), booking_id)

    async def refund_br15_hours(self, user_id: UUID, hours: Decimal, booking_id: UUID | None = None) -> User:
        return await self._refund(user_id, PackageType.BR15, Decimal(hours), booking_id)

    async def refund_br30_hours(self, user_id: UUID, hours: Decimal, booking_id: UUID | None = None) -> User:
        return await self._refund(user_id, PackageType.BR30, Decimal(hours), booking_id)

    async def refund_dp20_days(self, user_id: UUID, days: int = 1, booking_id: UUID | None = None) -> User:
        return await self._refund(user_id, PackageType.DP20, Decimal(days), booking_id)

    async def refund_booking(self, booking) -> User | None:
        """Credit back what a prepaid booking debited; cash is settled out of band."""
        method = PaymentMethod(booking.payment_method)
        if method is PaymentMethod.TOKEN:
            return await self.add_tokens(booking.user_id, booking.total_cost, booking.id)
        if method is PaymentMethod.BR15:
            return await self.refund_br15_hours(booking.user_id, booking.total_cost, booking.id)
        if method is PaymentMethod.BR30:
            return await self.refund_br30_hours(booking.user_id, booking.total_cost, booking.id)
        if method is PaymentMethod.DP20:
            return await self.refund_dp20_days(booking.user_id, 1, booking.id)
        return None

    async def assign_package(self, user_id: UUID, package: PackageType, admin_id: UUID,
                             expiry: datetime | None = None, amount: Decimal | None = None) -> tuple[User, Decimal]:
        if package is PackageType.TOKEN:
            if amount is None or amount <= 0:
                raise BookingValidationError("A positive token amount is required.")
        else:
            amount = Decimal(PACKAGE_SIZES[package])
            if expiry is None:
                raise BookingValidationError("An expiry date is required for packages.")

        user = await self.get_user(user_id, lock=True)
        self._apply(user, package, Decimal(amount), LedgerReason.ASSIGNED, expiry=expiry, assigned_by=admin_id)
        _, expiry_field = BALANCE_FIELDS[package]
        if expiry_field:
            setattr(user, expiry_field, expiry)

        self.db.add(OutboxEvent(
            event_type="package_assigned",
            payload={
                "user_id": str(user_id),
                "package_type": package.value,
                "amount": str(amount),
                "expiry": expiry.isoformat() if expiry else None,
                "assigned_by": str(admin_id),
            },
        ))
        await self.db.commit()
        await self.db.refresh(user)
        logger.info("Assigned %s %s to user %s", amount, package.value, user_id)
        return user, Decimal(amount)

    async def history(self, user_id: UUID):
        query = (
            select(PackageHistory)
            .where(PackageHistory.user_id == user_id)
            .order_by(PackageHistory.created_at.desc(), PackageHistory.id.desc())
        )
        result = await self.db.execute(query)
        return result.scalars().all()

    async def clear_expired_packages(self, now: datetime | None = None) -> list[dict]:
        """Zero every BR15/BR30/DP20 balance whose expiry has passed."""
        now = now or utcnow()
        query = (
            select(User)
            .where(or_(User.br15_expiry <= now, User.br30_expiry <= now, User.dp20_expiry <= now))
            .with_for_update(skip_locked=True)
        )
        result = await self.db.execute(query)
        users = result.scalars().all()

        cleared = []
        for user in users:
            summary = {"user_id": str(user.id)}
            for package in (PackageType.BR15, PackageType.BR30, PackageType.DP20):
                balance_field, expiry_field = BALANCE_FIELDS[package]
                expiry = getattr(user, expiry_field)
                balance = getattr(user, balance_field) or 0
                if expiry is None or expiry > now or balance <= 0:
                    continue
                self._apply(user, package, -Decimal(balance), LedgerReason.EXPIRED, expiry=expiry)
                summary[f"{package.value}_cleared"] = float(balance)
            if len(summary) > 1:
                cleared.append(summary)

        await self.db.commit()
        return cleared


async def get_package_repository(db: AsyncSession = Depends(get_async_session)):
    return PackageRepository(db)
