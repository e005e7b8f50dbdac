from datetime import timedelta

from conftest import auth
from tripbook.core.security import create_refresh_token, hash_password
from tripbook.core.timeutils import utcnow
from tripbook.models.plan import Plan


def test_login_and_me(client, db, customer):
    customer.password_hash = hash_password("trek-the-himalayas")
    db.commit()
    r = client.post("/api/v1/auth/login", json={"email": customer.email.upper(), "password": "trek-the-himalayas"})
    assert r.status_code == 200
    token = r.json()["access_token"]
    me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["id"] == customer.id
    assert me.json()["role"] == "user"

    bad = client.post("/api/v1/auth/login", json={"email": customer.email, "password": "nope"})
    assert bad.status_code == 401
    assert bad.json() == {"error": "Invalid credentials"}


def test_refresh_token_cannot_be_used_as_access_token(client, customer):
    refresh = create_refresh_token(customer.id)
    assert client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {refresh}"}).status_code == 401
    r = client.post("/api/v1/auth/refresh", json={"refresh_token": refresh})
    assert r.status_code == 200
    assert r.json()["token_type"] == "bearer"


def test_vendor_builds_plan_and_departures(client, db, vendor, customer):
    r = client.post("/api/v1/vendor/plans", headers=auth(vendor), json={"name": "Hampi Heritage Walk", "price": 2500})
    assert r.status_code == 201, r.text
    plan = r.json()
    assert plan["vendorCut"] == 85
    assert plan["vendorId"] == vendor.id

    for days in (20, 10):
        r = client.post(f"/api/v1/vendor/plans/{plan['id']}/departures", headers=auth(vendor), json={
            "departureDate": (utcnow() + timedelta(days=days)).isoformat(),
            "totalCapacity": 8,
            "pickupTime": "07:00",
        })
        assert r.status_code == 201, r.text

    listed = client.get("/api/v1/departures", params={"planId": plan["id"]}).json()
    assert [d["availableSeats"] for d in listed] == [8, 8]
    assert listed[0]["departureDate"] < listed[1]["departureDate"]
    assert client.get(f"/api/v1/plans/{plan['id']}").json()["name"] == "Hampi Heritage Walk"


def test_custom_vendor_cut_is_stored_on_plan(client, db, vendor):
    r = client.post("/api/v1/vendor/plans", headers=auth(vendor), json={"name": "Coorg Coffee Trail", "price": 4000, "vendorCut": 80})
    assert db.get(Plan, r.json()["id"]).vendor_cut_percent == 80


def test_catalog_permissions_and_validation(client, customer, other_vendor, plan):
    assert client.post("/api/v1/vendor/plans", headers=auth(customer), json={"name": "x", "price": 1}).status_code == 403
    future = (utcnow() + timedelta(days=5)).isoformat()
    r = client.post(f"/api/v1/vendor/plans/{plan.id}/departures", headers=auth(other_vendor),
                    json={"departureDate": future, "totalCapacity": 4})
    assert r.status_code == 403
    assert client.get("/api/v1/plans/missing").status_code == 404


def test_departure_must_be_in_future(client, vendor, plan):
    past = (utcnow() - timedelta(days=1)).isoformat()
    r = client.post(f"/api/v1/vendor/plans/{plan.id}/departures", headers=auth(vendor),
                    json={"departureDate": past, "totalCapacity": 4})
    assert r.status_code == 400


def test_listing_hides_unbookable_departures(client, plan, make_departure):
    make_departure(days=-2)
    make_departure(status="cancelled")
    open_dep = make_departure(days=12, capacity=5, booked=3)
    listed = client.get("/api/v1/departures", params={"planId": plan.id}).json()
    assert [(d["id"], d["availableSeats"]) for d in listed] == [(open_dep.id, 2)]


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
