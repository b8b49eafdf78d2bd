"""Tests for the admin API."""

from datetime import date

import pytest

from app.models.booking import BookingStatus, PaymentStatus


@pytest.mark.asyncio
async def test_admin_requires_secret(client, business, admin_headers):
    resp = await client.get("/api/v1/admin/dashboard", headers={"X-Business-Id": business.id})
    assert resp.status_code == 401

    wrong = await client.get(
        "/api/v1/admin/dashboard", headers={"X-Admin-Secret": "guess", "X-Business-Id": business.id}
    )
    assert wrong.status_code == 401


@pytest.mark.asyncio
async def test_admin_secret_as_query_param(client, business, admin_headers):
    resp = await client.get(
        "/api/v1/admin/settings",
        params={"admin_secret": admin_headers["X-Admin-Secret"], "businessId": business.id},
    )
    assert resp.status_code == 200
    assert resp.json()["reference_prefix"] == "NAB"


@pytest.mark.asyncio
async def test_admin_rejected_when_no_secret_configured(client, business, monkeypatch):
    monkeypatch.setattr("app.core.config.settings.ADMIN_SECRET", "")
    resp = await client.get("/api/v1/admin/settings", headers={"X-Admin-Secret": ""})
    assert resp.status_code == 401


# ----------------------------------------------------------------------
# dashboard and booking list
# ----------------------------------------------------------------------

@pytest.mark.asyncio
async def test_dashboard(client, consultant, make_booking, admin_headers):
    await make_booking(time_slot="10:00", amount=500)
    await make_booking(time_slot="11:00", amount=900, status=BookingStatus.CONFIRMED)
    await make_booking(time_slot="12:00", status=BookingStatus.CANCELLED)
    await make_booking(time_slot="13:00", status=BookingStatus.DRAFT, payment_status=PaymentStatus.PENDING)

    resp = await client.get("/api/v1/admin/dashboard", headers=admin_headers)

    assert resp.status_code == 200
    data = resp.json()
    assert data["total_bookings"] == 4
    assert data["by_status"]["pending"] == 1
    assert data["by_status"]["confirmed"] == 1
    assert data["by_status"]["completed"] == 0
    assert data["paid_bookings"] == 2
    assert data["revenue"] == 1400.0
    assert data["active_consultants"] == 1


@pytest.mark.asyncio
async def test_list_bookings_filters(client, consultant, make_booking, admin_headers):
    await make_booking(time_slot="10:00", assigned_consultant=consultant.id)
    await make_booking(time_slot="11:00", status=BookingStatus.CONFIRMED)
    await make_booking(date=date(2030, 5, 15), time_slot="10:00")

    everything = await client.get("/api/v1/admin/bookings", headers=admin_headers)
    assert len(everything.json()) == 3

    confirmed = await client.get("/api/v1/admin/bookings", params={"status": "confirmed"}, headers=admin_headers)
    assert [b["time_slot"] for b in confirmed.json()] == ["11:00"]

    on_day = await client.get("/api/v1/admin/bookings", params={"date": "2030-05-15"}, headers=admin_headers)
    assert len(on_day.json()) == 1

    mine = await client.get(
        "/api/v1/admin/bookings", params={"consultant_id": consultant.id}, headers=admin_headers
    )
    assert [b["assigned_consultant"] for b in mine.json()] == [consultant.id]

    page = await client.get("/api/v1/admin/bookings", params={"limit": 2}, headers=admin_headers)
    assert len(page.json()) == 2


# ----------------------------------------------------------------------
# booking actions
# ----------------------------------------------------------------------

@pytest.mark.asyncio
async def test_status_update(client, make_booking, admin_headers):
    booking = await make_booking()
    url = f"/api/v1/admin/bookings/{booking.reference_id}/status"

    resp = await client.patch(url, json={"status": "confirmed"}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "confirmed"

    done = await client.patch(url, json={"status": "completed"}, headers=admin_headers)
    assert done.json()["status"] == "completed"

    # Terminal: nothing moves it any more
    back = await client.patch(url, json={"status": "pending"}, headers=admin_headers)
    assert back.status_code == 409


@pytest.mark.asyncio
async def test_status_update_rejects_unknown_status(client, make_booking, admin_headers):
    booking = await make_booking()
    resp = await client.patch(
        f"/api/v1/admin/bookings/{booking.reference_id}/status", json={"status": "archived"}, headers=admin_headers
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_status_cancel_goes_through_cancellation(client, make_booking, admin_headers, dispatcher):
    booking = await make_booking()
    resp = await client.patch(
        f"/api/v1/admin/bookings/{booking.reference_id}/status", json={"status": "cancelled"}, headers=admin_headers
    )
    assert resp.json()["status"] == "cancelled"
    assert resp.json()["cancelled_at"] is not None
    assert dispatcher.send.call_args.args[0].value == "cancellation"


@pytest.mark.asyncio
async def test_assign_consultant(client, consultant, make_booking, admin_headers):
    booking = await make_booking()
    resp = await client.patch(
        f"/api/v1/admin/bookings/{booking.reference_id}/assign",
        json={"consultant_id": consultant.id},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["assigned_consultant"] == consultant.id
    assert resp.json()["consultant_name"] == "Asha Rao"


@pytest.mark.asyncio
async def test_assign_busy_consultant(client, consultant, make_booking, admin_headers):
    await make_booking(time_slot="10:00", assigned_consultant=consultant.id)
    booking = await make_booking(time_slot="10:00")
    resp = await client.patch(
        f"/api/v1/admin/bookings/{booking.reference_id}/assign",
        json={"consultant_id": consultant.id},
        headers=admin_headers,
    )
    assert resp.status_code == 409

    auto = await client.patch(
        f"/api/v1/admin/bookings/{booking.reference_id}/assign", json={}, headers=admin_headers
    )
    assert auto.status_code == 409
    assert "No consultant" in auto.json()["detail"]


@pytest.mark.asyncio
async def test_admin_cancel(client, make_booking, admin_headers):
    booking = await make_booking()
    resp = await client.post(f"/api/v1/admin/bookings/{booking.reference_id}/cancel", headers=admin_headers)
    assert resp.json()["status"] == "cancelled"


# ----------------------------------------------------------------------
# consultants
# ----------------------------------------------------------------------

@pytest.mark.asyncio
async def test_consultant_crud(client, business, admin_headers):
    created = await client.post(
        "/api/v1/admin/consultants",
        json={
            "name": "Bilal Khan",
            "email": "bilal@example.com",
            "specialization": "Audit",
            "unavailable_slots": [{"date": "2030-05-14", "start_time": "14:00", "end_time": "15:00"}],
        },
        headers=admin_headers,
    )
    assert created.status_code == 201
    consultant = created.json()
    assert consultant["status"] == "active"
    assert consultant["business_id"] == business.id

    listed = await client.get("/api/v1/admin/consultants", headers=admin_headers)
    assert [c["name"] for c in listed.json()] == ["Bilal Khan"]

    updated = await client.patch(
        f"/api/v1/admin/consultants/{consultant['id']}",
        json={"status": "inactive", "unavailable_slots": []},
        headers=admin_headers,
    )
    assert updated.json()["status"] == "inactive"
    assert updated.json()["unavailable_slots"] == []
    assert updated.json()["specialization"] == "Audit"

    deleted = await client.delete(f"/api/v1/admin/consultants/{consultant['id']}", headers=admin_headers)
    assert deleted.json() == {"message": "Consultant deleted"}

    missing = await client.get(
        f"/api/v1/admin/consultants/{consultant['id']}/conflicts",
        params={"date": "2030-05-14", "time_slot": "10:00", "duration": 30},
        headers=admin_headers,
    )
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_consultant_blackout_must_end_after_start(client, business, admin_headers):
    resp = await client.post(
        "/api/v1/admin/consultants",
        json={
            "name": "Bilal Khan",
            "email": "bilal@example.com",
            "unavailable_slots": [{"date": "2030-05-14", "start_time": "15:00", "end_time": "14:00"}],
        },
        headers=admin_headers,
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_consultant_conflicts(client, consultant, admin_headers):
    url = f"/api/v1/admin/consultants/{consultant.id}/conflicts"
    blocked = await client.get(
        url, params={"date": "2025-03-10", "time_slot": "10:30", "duration": 60}, headers=admin_headers
    )
    assert blocked.json()["conflicts"][0]["reason"] == "Training"

    free = await client.get(
        url, params={"date": "2025-03-10", "time_slot": "11:00", "duration": 60}, headers=admin_headers
    )
    assert free.json() == {"conflicts": []}


# ----------------------------------------------------------------------
# settings and off days
# ----------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_settings(client, business, admin_headers):
    resp = await client.patch(
        "/api/v1/admin/settings",
        json={"advance_booking_days": 30, "slot_durations": [{"duration": 45, "price": 700}]},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["advance_booking_days"] == 30
    assert data["slot_durations"] == [{"duration": 45, "price": 700.0}]
    assert data["timezone"] == "Asia/Kolkata"


@pytest.mark.asyncio
async def test_update_settings_rejects_unknown_timezone(client, business, admin_headers):
    resp = await client.patch("/api/v1/admin/settings", json={"timezone": "Mars/Olympus"}, headers=admin_headers)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_off_days(client, business, admin_headers):
    added = await client.post("/api/v1/admin/off-days", json={"date": "2030-08-15"}, headers=admin_headers)
    assert added.json()["off_days"] == ["2030-01-26", "2030-08-15"]

    again = await client.post("/api/v1/admin/off-days", json={"date": "2030-08-15"}, headers=admin_headers)
    assert again.json()["off_days"] == ["2030-01-26", "2030-08-15"]

    removed = await client.delete("/api/v1/admin/off-days/2030-01-26", headers=admin_headers)
    assert removed.json()["off_days"] == ["2030-08-15"]

    missing = await client.delete("/api/v1/admin/off-days/2030-01-26", headers=admin_headers)
    assert missing.status_code == 404


# ----------------------------------------------------------------------
# counter and reminders
# ----------------------------------------------------------------------

@pytest.mark.asyncio
async def test_counter_peek_and_reset(client, business, services, admin_headers):
    fresh = await client.get("/api/v1/admin/counter", headers=admin_headers)
    assert fresh.json()["counter"] == 0
    year = fresh.json()["year"]
    assert fresh.json()["next_reference_id"] == f"NAB_{year}_0001"

    await services.issuer.issue(business)
    await services.issuer.issue(business)
    peeked = await client.get("/api/v1/admin/counter", headers=admin_headers)
    assert peeked.json()["counter"] == 2
    assert peeked.json()["next_reference_id"] == f"NAB_{year}_0003"

    reset = await client.post("/api/v1/admin/counter/reset", headers=admin_headers)
    assert reset.json() == {"year": year, "counter": 0, "next_reference_id": None}
    assert await services.issuer.issue(business) == f"NAB_{year}_0001"


@pytest.mark.asyncio
async def test_run_reminders_now(client, business, admin_headers):
    resp = await client.post("/api/v1/admin/reminders/run", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json() == {"sent": {"12hr": 0, "1hr": 0, "1min": 0}}
