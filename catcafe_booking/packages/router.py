from uuid import UUID

from fastapi import APIRouter, Depends

from catcafe_booking.notifications.dispatcher import NotificationDispatcher, get_notification_dispatcher
from catcafe_booking.packages.repository import PackageRepository, get_package_repository
from catcafe_booking.packages.schemas import (
    AdminOnlySchema, BalancesSchema, PackageAssignSchema, PackageHistorySchema,
)

router = APIRouter(prefix="/packages", tags=["Packages"])


@router.get("/users/{user_id}/balances")
async def get_balances(
    user_id: UUID,
    repo: PackageRepository = Depends(get_package_repository),
):
    user = await repo.get_user(user_id)
    return {"success": True, "balances": BalancesSchema(**repo.balances(user))}


@router.get("/users/{user_id}/history")
async def get_history(
    user_id: UUID,
    repo: PackageRepository = Depends(get_package_repository),
):
    await repo.get_user(user_id)
    rows = await repo.history(user_id)
    return {"success": True, "history": [PackageHistorySchema.model_validate(r) for r in rows]}


@router.post("/assign")
async def assign_package(
    data: PackageAssignSchema,
    repo: PackageRepository = Depends(get_package_repository),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Credit a BR15/BR30/DP20 package or a token top-up and email the user."""
    await repo.require_admin(data.admin_id)
    user, amount = await repo.assign_package(
        data.user_id, data.package_type, data.admin_id, data.expiry, data.amount,
    )
    response = {"success": True, "amount": amount, "balances": BalancesSchema(**repo.balances(user))}

    sent = await notifier.notify_package(user, data.package_type.value, amount, data.expiry, data.language)
    if not sent.success:
        response["warning"] = f"Email notification failed: {sent.error}"
    return response


@router.post("/clear-expired")
async def clear_expired_packages(
    data: AdminOnlySchema,
    repo: PackageRepository = Depends(get_package_repository),
):
    await repo.require_admin(data.admin_id)
    cleared = await repo.clear_expired_packages()
    return {"success": True, "cleared_count": len(cleared), "cleared": cleared}
