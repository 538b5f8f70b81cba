from taskflow import customers
from tests.conftest import CLIENT

COLOMBO = (6.9271, 79.8612)
KANDY = (7.2906, 80.6337)


def _save(client, name, phone, address, coords=None):
    body = {"full_name": name, "phone_number": phone, "service_address": address}
    if coords:
        body["latitude"], body["longitude"] = coords
    resp = client.post("/customers", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_save_sets_email_and_locality(client, sb):
    saved = _save(client, "Nimali Perera", "0771234567", "12 Temple Road, Mount Lavinia")
    assert saved["email_address"] == CLIENT["auth_email"]
    assert saved["locality"] == "Mount Lavinia"
    assert saved["user_uid"] == CLIENT["id"]
    assert saved["latitude"] is None


def test_save_geocodes_when_no_coordinates(client, monkeypatch):
    async def _found(address, client=None):
        return COLOMBO
    monkeypatch.setattr(customers, "geocode_address", _found)

    saved = _save(client, "Nimali Perera", "0771234567", "42 Galle Road, Colombo 03")
    assert (saved["latitude"], saved["longitude"]) == COLOMBO


def test_same_phone_is_overwritten(client, sb):
    first = _save(client, "Nimali Perera", "0771234567", "42 Galle Road, Colombo 03")
    second = _save(client, "Nimali P.", "0771234567", "9 Lake Drive, Kandy city")
    assert second["id"] == first["id"]
    assert second["created_at"] == first["created_at"]
    assert len(sb.rows("customer_information")) == 1
    assert sb.rows("customer_information")[0]["full_name"] == "Nimali P."


def test_save_requires_fields(client):
    resp = client.post("/customers", json={"full_name": " ", "phone_number": "", "service_address": ""})
    assert resp.status_code == 400
    assert resp.json()["detail"]["errors"] == [
        "Full name is required",
        "Phone number is required",
        "Service address is required",
    ]


def test_lookup_prefills_booking_form(client):
    _save(client, "Nimali Perera", "0771234567", "42 Galle Road, Colombo 03", COLOMBO)

    found = client.get("/customers/lookup", params={"phone": "0771234567"}).json()
    assert found["found"] is True
    assert found["customer_name"] == "Nimali Perera"
    assert found["customer_address"] == "42 Galle Road, Colombo 03"
    assert found["customer_email"] == CLIENT["auth_email"]

    missing = client.get("/customers/lookup", params={"phone": "0719999999"}).json()
    assert missing == {
        "found": False,
        "customer_name": "",
        "customer_email": CLIENT["auth_email"],
        "customer_phone": "0719999999",
        "customer_address": "",
        "latitude": None,
        "longitude": None,
    }


def test_recent_search_near_frequent_and_stats(client):
    _save(client, "Nimali Perera", "0771234567", "42 Galle Road, Colombo 03", COLOMBO)
    _save(client, "Kamal Fernando", "0712345678", "9 Lake Drive, Kandy city", KANDY)
    _save(client, "Ruwan Jayasuriya", "0723456789", "42 Galle Road, Colombo 03")

    assert len(client.get("/customers").json()) == 3
    assert [c["full_name"] for c in client.get("/customers", params={"q": "kandy"}).json()] == ["Kamal Fernando"]

    near = client.get("/customers/near", params={"lat": COLOMBO[0], "lng": COLOMBO[1]}).json()
    assert [c["full_name"] for c in near] == ["Nimali Perera"]
    wide = client.get("/customers/near", params={"lat": COLOMBO[0], "lng": COLOMBO[1], "radius_km": 150}).json()
    assert len(wide) == 2

    frequent = client.get("/customers/addresses/frequent").json()
    assert frequent[0] == "42 Galle Road, Colombo 03"
    assert len(frequent) == 2

    assert client.get("/customers/stats").json() == {"count": 3, "unique_phones": 3}


def test_save_runs_off_the_event_loop(client, sb):
    _save(client, "Nimali Perera", "0771234567", "42 Galle Road, Colombo 03")
    assert ("customer_information", "upsert") in sb.calls
    assert sb.loop_calls == []
