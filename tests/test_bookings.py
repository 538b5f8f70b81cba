from datetime import date, timedelta

from tests.conftest import CLIENT, TASKER


def _create(client, payload):
    resp = client.post("/bookings", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_create_booking_writes_record_and_side_effects(client, sb, service, booking_payload):
    booking = _create(client, booking_payload)

    assert booking["status"] == "pending"
    assert booking["payment_status"] == "pending"
    assert booking["total_amount"] == 4500.0
    assert booking["currency"] == "LKR"
    assert booking["customer_email"] == CLIENT["auth_email"]
    assert booking["provider_id"] == TASKER["id"]
    assert booking["created_by"] == CLIENT["id"]

    assert [b["id"] for b in sb.rows("bookings")] == [booking["id"]]

    contract = sb.rows("contracts")[0]
    assert contract["id"] == booking["id"]
    assert contract["provider_id"] == TASKER["id"]
    assert contract["status"] == "pending"

    saved = sb.rows("customer_information")[0]
    assert saved["phone_number"] == "0771234567"
    assert saved["locality"] == "Colombo"

    ids = {n["id"] for n in sb.rows("notifications")}
    assert ids == {
        f"booking_confirmed_{booking['id']}",
        f"booking_reminder_{booking['id']}",
        f"booking_reminder_day_{booking['id']}",
    }
    for n in sb.rows("notifications"):
        assert n["payload"]["bookingId"] == booking["id"]
        assert n["payload"]["type"] == n["type"]


def test_day_before_reminder_is_optional(client, sb, service, booking_payload):
    booking = _create(client, {**booking_payload, "remind_day_before": False})
    ids = {n["id"] for n in sb.rows("notifications")}
    assert f"booking_reminder_day_{booking['id']}" not in ids
    assert len(ids) == 2


def test_create_booking_rejects_bad_details(client, sb, service, booking_payload):
    payload = {
        **booking_payload,
        "customer_phone": "12345",
        "scheduled_date": (date.today() - timedelta(days=3)).isoformat(),
    }
    resp = client.post("/bookings", json=payload)
    assert resp.status_code == 400
    errors = resp.json()["detail"]["errors"]
    assert "Please enter a valid Sri Lankan phone number" in errors
    assert "Please choose a date from today onwards" in errors
    assert sb.rows("bookings") == []


def test_create_booking_unknown_or_inactive_service(client, sb, service, booking_payload):
    assert client.post("/bookings", json={**booking_payload, "service_id": "nope"}).status_code == 404
    service_row = sb.rows("services")[0]
    service_row["is_active"] = False
    assert client.post("/bookings", json=booking_payload).status_code == 404


def test_secondary_steps_do_not_fail_the_booking(client, sb, service, booking_payload):
    sb.failing = {"notifications", "contracts", "customer_information"}
    booking = _create(client, booking_payload)
    assert sb.rows("bookings")[0]["id"] == booking["id"]


def test_write_failure_is_readable(client, sb, service, booking_payload):
    sb.failing = {"bookings"}
    resp = client.post("/bookings", json=booking_payload)
    assert resp.status_code == 500
    assert resp.json()["detail"].startswith("Failed to create booking")


def test_validate_step(client):
    resp = client.post("/bookings/validate", json={
        "customer_name": "Nimali",
        "customer_phone": "0771234567",
        "customer_address": "1 Main Street, Springfield",
    })
    body = resp.json()
    assert body["valid"] is True
    assert body["has_required_fields"] is True
    assert body["warnings"] == ["We couldn't recognise a Sri Lankan town or city in this address"]

    body = client.post("/bookings/validate", json={"customer_name": "Nimali"}).json()
    assert body["valid"] is False
    assert body["has_required_fields"] is False
    assert "Phone number is required" in body["errors"]


def test_list_bookings_with_counts(client, sb, service, booking_payload):
    first = _create(client, booking_payload)
    _create(client, booking_payload)
    sb.rows("bookings")[0]["status"] = "completed"

    body = client.get("/bookings").json()
    assert body["total"] == 2
    assert body["pending"] == 1
    assert body["completed"] == 1

    only_completed = client.get("/bookings", params={"status": "completed"}).json()
    assert [b["id"] for b in only_completed["bookings"]] == [first["id"]]


def test_get_booking_visible_to_both_parties_only(client, act_as, service, booking_payload):
    booking = _create(client, booking_payload)
    assert client.get(f"/bookings/{booking['id']}").status_code == 200
    act_as(TASKER)
    assert client.get(f"/bookings/{booking['id']}").status_code == 200
    act_as({**CLIENT, "id": "someone-else"})
    assert client.get(f"/bookings/{booking['id']}").status_code == 404


def test_client_cancels_booking(client, sb, act_as, service, booking_payload):
    booking = _create(client, booking_payload)

    act_as(TASKER)
    assert client.post(f"/bookings/{booking['id']}/cancel").status_code == 403

    act_as(CLIENT)
    resp = client.post(f"/bookings/{booking['id']}/cancel")
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    assert resp.json()["cancelled_by"] == CLIENT["id"]

    assert sb.rows("bookings")[0]["status"] == "cancelled"
    assert sb.rows("contracts")[0]["status"] == "cancelled"
    ids = {n["id"] for n in sb.rows("notifications")}
    assert f"booking_reminder_{booking['id']}" not in ids
    assert f"booking_reminder_day_{booking['id']}" not in ids
    assert any(i.startswith(f"status_update_{booking['id']}_") for i in ids)

    assert client.post(f"/bookings/{booking['id']}/cancel").status_code == 409


def test_provider_completes_booking(client, sb, act_as, service, booking_payload):
    booking = _create(client, booking_payload)

    resp = client.patch(f"/bookings/{booking['id']}/status", json={"status": "in_progress"})
    assert resp.status_code == 403

    act_as(TASKER)
    resp = client.patch(f"/bookings/{booking['id']}/status", json={"status": "completed"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "completed"
    assert sb.rows("contracts")[0]["status"] == "completed"

    ids = {n["id"] for n in sb.rows("notifications")}
    assert f"service_completed_{booking['id']}" in ids
    tasker_row = next(u for u in sb.rows("users") if u["id"] == TASKER["id"])
    assert tasker_row["total_jobs"] == 4

    again = client.patch(f"/bookings/{booking['id']}/status", json={"status": "cancelled"})
    assert again.status_code == 409


def test_booking_database_work_runs_off_the_event_loop(client, sb, service, booking_payload):
    _create(client, booking_payload)
    assert ("bookings", "insert") in sb.calls
    assert ("notifications", "upsert") in sb.calls
    assert sb.loop_calls == []


def test_provider_cancellation_records_who_and_when(client, sb, act_as, service, booking_payload):
    booking = _create(client, booking_payload)

    act_as(TASKER)
    resp = client.patch(f"/bookings/{booking['id']}/status", json={"status": "cancelled"})
    assert resp.status_code == 200
    assert resp.json()["cancelled_by"] == TASKER["id"]
    assert resp.json()["cancelled_at"] is not None

    stored = sb.rows("bookings")[0]
    assert stored["status"] == "cancelled"
    assert stored["cancelled_by"] == TASKER["id"]
    assert stored["cancelled_at"] == stored["updated_at"]
