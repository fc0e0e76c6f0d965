from decimal import Decimal

import pytest

from catcafe_booking.main import app
from catcafe_booking.storage.receipts import MAX_FILE_SIZE, get_receipt_storage


def _payload(guest, **overrides):
    data = {
        "user_id": str(guest.id),
        "room_id": 1,
        "booking_date": "2030-01-15",
        "start_time": "10:00",
        "end_time": "12:00",
        "payment_method": "cash",
        "purpose": ["meeting"],
        "equipment": [{"type": "whiteboard", "quantity": 1}],
        "language": "en",
    }
    data.update(overrides)
    return data


async def test_health(client):
    response = await client.get("/health")
    assert response.json()["status"] == "ok"


async def test_create_booking_sends_email(client, open_day, guest, mailer):
    response = await client.post("/api/v1/bookings", json=_payload(guest))
    body = response.json()

    assert response.status_code == 201
    assert body["success"] is True
    assert body["booking"]["status"] == "pending"
    assert Decimal(body["booking"]["total_cost"]) == Decimal("200")
    assert "warning" not in body
    assert mailer.sent[0]["subject"].startswith("Your Booking Has Been Created")


async def test_prepaid_booking_sends_confirmation(client, open_day, guest, mailer):
    response = await client.post("/api/v1/bookings", json=_payload(guest, payment_method="token"))
    assert response.json()["booking"]["status"] == "confirmed"
    assert mailer.sent[0]["subject"] == "Your Ofcoz Family Booking is Confirmed! - Room A"


async def test_email_failure_becomes_warning(client, open_day, guest, mailer):
    mailer.fail = True
    response = await client.post("/api/v1/bookings", json=_payload(guest))
    body = response.json()

    assert response.status_code == 201
    assert body["success"] is True
    assert "SMTP is not configured" in body["warning"]


async def test_closed_date_error_shape(client, rooms, guest):
    response = await client.post("/api/v1/bookings", json=_payload(guest))
    assert response.status_code == 409
    assert response.json() == {
        "success": False,
        "error": "This date is not open for booking. Please pick another date.",
        "unavailable": True,
    }


async def test_conflict_error_shape(client, open_day, guest):
    await client.post("/api/v1/bookings", json=_payload(guest))
    response = await client.post("/api/v1/bookings", json=_payload(guest, start_time="11:30", end_time="13:00"))
    assert response.status_code == 409
    assert response.json()["conflict"] is True


async def test_balance_error_shape(client, open_day, guest):
    response = await client.post(
        "/api/v1/bookings",
        json=_payload(guest, payment_method="dp20", booking_type="daily", end_time="18:00"),
    )
    body = response.json()
    assert response.status_code == 402
    assert body["success"] is False
    assert body["package"] == "dp20"
    assert body["required"] == 1.0
    assert body["available"] == 0.0


@pytest.mark.parametrize(
    "overrides",
    [
        {"purpose": []},
        {"equipment": []},
        {"equipment": [{"type": "monitor", "quantity": 0}]},
        {"guests": 0},
        {"start_time": "10:5"},
        {"start_time": "12:00", "end_time": "11:00"},
        {"purpose": ["other"]},
    ],
)
async def test_request_validation(client, open_day, guest, overrides):
    response = await client.post("/api/v1/bookings", json=_payload(guest, **overrides))
    assert response.status_code == 422
    assert response.json()["success"] is False


async def test_cancel_and_refund_through_api(client, open_day, guest, mailer):
    created = await client.post("/api/v1/bookings", json=_payload(guest, payment_method="token"))
    booking_id = created.json()["booking"]["id"]

    response = await client.post(
        f"/api/v1/bookings/{booking_id}/cancel",
        json={"actor_id": str(guest.id), "reason": "Sick", "language": "en"},
    )
    body = response.json()
    assert body["refunded"] is True
    assert body["booking"]["status"] == "cancelled"
    assert mailer.sent[-1]["subject"] == "Booking Cancellation Confirmation - Ofcoz Family"

    balances = await client.get(f"/api/v1/packages/users/{guest.id}/balances")
    assert Decimal(balances.json()["balances"]["tokens"]) == Decimal("5")

    again = await client.post(f"/api/v1/bookings/{booking_id}/cancel", json={"actor_id": str(guest.id)})
    assert again.status_code == 409


async def test_admin_endpoints_require_admin(client, open_day, guest, admin):
    response = await client.get("/api/v1/bookings", params={"admin_id": str(guest.id)})
    assert response.status_code == 403

    response = await client.get("/api/v1/bookings", params={"admin_id": str(admin.id)})
    assert response.status_code == 200
    assert response.json()["bookings"] == []


async def test_mark_paid_flow(client, open_day, guest, admin, mailer):
    created = await client.post("/api/v1/bookings", json=_payload(guest))
    booking_id = created.json()["booking"]["id"]

    pending = await client.get("/api/v1/bookings/pending-payments", params={"admin_id": str(admin.id)})
    assert [b["id"] for b in pending.json()["bookings"]] == [booking_id]

    response = await client.post(
        f"/api/v1/bookings/{booking_id}/mark-paid",
        json={"admin_id": str(admin.id), "admin_notes": "FPS", "language": "en"},
    )
    assert response.json()["booking"]["payment_status"] == "completed"
    assert mailer.sent[-1]["subject"] == "Booking Confirmed - Payment Approved!"


async def test_availability_check(client, open_day, guest):
    await client.post("/api/v1/bookings", json=_payload(guest))
    params = {"room_id": 1, "booking_date": "2030-01-15", "start_time": "12:00", "end_time": "13:00"}

    response = await client.get("/api/v1/bookings/availability", params=params)
    assert response.json()["available"] is True

    params["start_time"] = "11:00"
    response = await client.get("/api/v1/bookings/availability", params=params)
    assert response.json()["slot_free"] is False


async def test_availability_rejects_inverted_interval(client, open_day, guest):
    await client.post("/api/v1/bookings", json=_payload(guest))
    params = {"room_id": 1, "booking_date": "2030-01-15", "start_time": "12:00", "end_time": "10:00"}

    response = await client.get("/api/v1/bookings/availability", params=params)
    assert response.status_code == 422
    assert response.json()["success"] is False


async def test_open_date_via_api(client, rooms, admin):
    response = await client.post(
        "/api/v1/available-dates",
        json={"admin_id": str(admin.id), "available_date": "2030-05-01", "room_id": 2},
    )
    assert response.status_code == 201

    duplicate = await client.post(
        "/api/v1/available-dates",
        json={"admin_id": str(admin.id), "available_date": "2030-05-01", "room_id": 2},
    )
    assert duplicate.status_code == 409

    dates = await client.get("/api/v1/available-dates/dates", params={"room_id": 2})
    assert dates.json() == ["2030-05-01"]

    closed = await client.delete("/api/v1/available-dates/2030-05-01", params={"admin_id": str(admin.id)})
    assert closed.json()["success"] is True


async def test_rooms_listing_hides_hidden_rooms(client, rooms, admin):
    await client.patch("/api/v1/rooms/9", json={"admin_id": str(admin.id), "hidden": True})
    response = await client.get("/api/v1/rooms")
    assert [room["id"] for room in response.json()] == [1, 2]


async def test_assign_package_via_api(client, guest, admin, mailer):
    response = await client.post(
        "/api/v1/packages/assign",
        json={
            "admin_id": str(admin.id),
            "user_id": str(guest.id),
            "package_type": "br30",
            "expiry": "2031-06-30T00:00:00",
            "language": "en",
        },
    )
    body = response.json()
    assert body["success"] is True
    assert Decimal(body["balances"]["br30_balance"]) == Decimal("30")
    assert mailer.sent[-1]["subject"] == "Package Assigned - Your Account Updated"

    history = await client.get(f"/api/v1/packages/users/{guest.id}/history")
    assert history.json()["history"][0]["reason"] == "assigned"


class FakeStorage:
    def __init__(self):
        self.uploads = []

    async def upload(self, booking_id, content, content_type, filename=None):
        self.uploads.append((booking_id, content_type))
        return f"{booking_id}/1700000000000.png"

    async def signed_url(self, stored):
        return f"https://files.example.com/{stored}?token=t"


async def test_receipt_upload_and_view(client, open_day, guest, other_guest, mailer):
    storage = FakeStorage()
    app.dependency_overrides[get_receipt_storage] = lambda: storage
    created = await client.post("/api/v1/bookings", json=_payload(guest))
    booking_id = created.json()["booking"]["id"]

    response = await client.post(
        f"/api/v1/bookings/{booking_id}/receipt",
        data={"actor_id": str(guest.id), "language": "en"},
        files={"file": ("receipt.png", b"\x89PNG", "image/png")},
    )
    body = response.json()
    assert body["booking"]["status"] == "to_be_confirmed"
    assert body["booking"]["receipt_path"].endswith(".png")
    assert mailer.sent[-1]["subject"] == "Payment Receipt Received - Pending Confirmation"

    url = await client.get(f"/api/v1/bookings/{booking_id}/receipt-url", params={"actor_id": str(guest.id)})
    assert url.json()["url"].startswith("https://files.example.com/")

    denied = await client.get(f"/api/v1/bookings/{booking_id}/receipt-url", params={"actor_id": str(other_guest.id)})
    assert denied.status_code == 403


async def test_oversized_receipt_is_rejected_before_storage(client, open_day, guest):
    storage = FakeStorage()
    app.dependency_overrides[get_receipt_storage] = lambda: storage
    created = await client.post("/api/v1/bookings", json=_payload(guest))
    booking_id = created.json()["booking"]["id"]

    response = await client.post(
        f"/api/v1/bookings/{booking_id}/receipt",
        data={"actor_id": str(guest.id)},
        files={"file": ("receipt.png", b"x" * (MAX_FILE_SIZE + 1), "image/png")},
    )
    assert response.status_code == 422
    assert response.json()["success"] is False
    assert storage.uploads == []
