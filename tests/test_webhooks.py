import json

from conftest import FakeRazorpay, auth, reload, sign_webhook
from tripbook.api.deps import get_gateway
from tripbook.main import app
from tripbook.models.booking import Booking
from tripbook.models.departure import Departure
from tripbook.services.gateway import PaymentGateway


def _post(client, event: dict, signature: str | None = "sign"):
    body = json.dumps(event).encode()
    headers = {"Content-Type": "application/json"}
    if signature == "sign":
        headers["X-Razorpay-Signature"] = sign_webhook(body)
    elif signature:
        headers["X-Razorpay-Signature"] = signature
    return client.post("/api/v1/payments/webhook", content=body, headers=headers)


def _payment_event(name, payment_id, order_id, amount):
    return {"event": name, "payload": {"payment": {"entity": {
        "id": payment_id, "order_id": order_id, "amount": amount, "currency": "INR",
        "status": "captured" if name == "payment.captured" else "failed",
    }}}}


def _refund_event(name, refund_id, payment_id, amount):
    return {"event": name, "payload": {"refund": {"entity": {
        "id": refund_id, "payment_id": payment_id, "amount": amount,
    }}}}


def _pending_with_order(client, customer, plan, departure):
    r = client.post("/api/v1/bookings", headers=auth(customer),
                    json={"planId": plan.id, "departureId": departure.id, "numPeople": 2})
    booking_id = r.json()["bookingId"]
    order = client.post("/api/v1/payments/create-order", headers=auth(customer), json={"bookingId": booking_id}).json()
    return booking_id, order["orderId"]


def test_signature_is_required(client):
    event = {"event": "payment.captured", "payload": {}}
    assert _post(client, event, signature=None).status_code == 400
    r = _post(client, event, signature="deadbeef")
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid signature"


def test_missing_webhook_secret_is_a_server_error(client):
    app.dependency_overrides[get_gateway] = lambda: PaymentGateway(FakeRazorpay(webhook_secret=""))
    r = _post(client, {"event": "payment.captured", "payload": {}})
    assert r.status_code == 500


def test_malformed_json(client):
    body = b"{not json"
    r = client.post("/api/v1/payments/webhook", content=body, headers={"X-Razorpay-Signature": sign_webhook(body)})
    assert r.status_code == 400


def test_unknown_events_and_bookings_are_acknowledged(client):
    assert _post(client, {"event": "payment.authorized", "payload": {}}).json() == {"received": True}
    assert _post(client, {"event": "order.paid", "payload": {}}).json() == {"received": True}
    r = _post(client, _payment_event("payment.captured", "pay_ghost", "order_ghost", 100))
    assert r.status_code == 200
    assert r.json() == {"received": True}


def test_captured_confirms_by_order_id(client, db, customer, plan, departure):
    booking_id, order_id = _pending_with_order(client, customer, plan, departure)
    r = _post(client, _payment_event("payment.captured", "pay_wh_1", order_id, 1000000))
    assert r.status_code == 200
    b = reload(db, Booking, booking_id)
    assert (b.booking_status, b.payment_status, b.razorpay_payment_id) == ("confirmed", "completed", "pay_wh_1")

    # redelivery is a no-op
    _post(client, _payment_event("payment.captured", "pay_wh_1", order_id, 1000000))
    assert reload(db, Booking, booking_id).booking_status == "confirmed"


def test_webhook_then_client_verify_converge(client, db, razorpay, customer, plan, departure):
    booking_id, order_id = _pending_with_order(client, customer, plan, departure)
    payment_id, signature = razorpay.pay(order_id)
    _post(client, _payment_event("payment.captured", payment_id, order_id, 1000000))

    r = client.post("/api/v1/payments/verify", headers=auth(customer), json={
        "bookingId": booking_id, "razorpay_order_id": order_id,
        "razorpay_payment_id": payment_id, "razorpay_signature": signature,
    })
    assert r.status_code == 200
    assert r.json()["success"] is True
    assert razorpay.refunds == []
    assert reload(db, Departure, departure.id).booked_seats == 2


def test_captured_with_wrong_amount_is_not_confirmed(client, db, customer, plan, departure):
    booking_id, order_id = _pending_with_order(client, customer, plan, departure)
    _post(client, _payment_event("payment.captured", "pay_wh_2", order_id, 500))
    assert reload(db, Booking, booking_id).booking_status == "pending"


def test_payment_failed_releases_seats(client, db, customer, plan, departure):
    booking_id, order_id = _pending_with_order(client, customer, plan, departure)
    assert reload(db, Departure, departure.id).booked_seats == 2
    _post(client, _payment_event("payment.failed", "pay_wh_3", order_id, 1000000))
    b = reload(db, Booking, booking_id)
    assert (b.booking_status, b.payment_status) == ("failed", "failed")
    assert reload(db, Departure, departure.id).booked_seats == 0

    _post(client, _payment_event("payment.failed", "pay_wh_3", order_id, 1000000))
    assert reload(db, Departure, departure.id).booked_seats == 0


def test_payment_failed_does_not_touch_confirmed(client, db, customer, departure, make_booking):
    b = make_booking(departure, customer)
    _post(client, _payment_event("payment.failed", b.razorpay_payment_id, b.razorpay_order_id, 1000000))
    assert reload(db, Booking, b.id).booking_status == "confirmed"
    assert reload(db, Departure, departure.id).booked_seats == 2


def test_capture_after_failure_is_refunded(client, db, razorpay, customer, plan, departure):
    booking_id, order_id = _pending_with_order(client, customer, plan, departure)
    _post(client, _payment_event("payment.failed", "pay_try_1", order_id, 1000000))
    _post(client, _payment_event("payment.captured", "pay_try_2", order_id, 1000000))

    assert [r["payment_id"] for r in razorpay.refunds] == ["pay_try_2"]
    b = reload(db, Booking, booking_id)
    assert (b.booking_status, b.refund_status, b.razorpay_payment_id) == ("failed", "completed", "pay_try_2")

    _post(client, _payment_event("payment.captured", "pay_try_2", order_id, 1000000))
    assert len(razorpay.refunds) == 1


def test_refund_events_progress_and_never_regress(client, db, customer, departure, make_booking):
    b = make_booking(departure, customer, refund_status="processing", refund_amount=5000)
    pid = b.razorpay_payment_id

    _post(client, _refund_event("refund.created", "rfnd_wh_1", pid, 500000))
    assert reload(db, Booking, b.id).refund_status == "processing"

    _post(client, _refund_event("refund.processed", "rfnd_wh_1", pid, 500000))
    done = reload(db, Booking, b.id)
    assert (done.refund_status, done.refund_id, done.refund_amount) == ("completed", "rfnd_wh_1", 5000)
    assert done.refund_date is not None

    _post(client, _refund_event("refund.failed", "rfnd_wh_1", pid, 500000))
    _post(client, _refund_event("refund.created", "rfnd_wh_1", pid, 500000))
    assert reload(db, Booking, b.id).refund_status == "completed"


def test_refund_failed_event_rejects(client, db, customer, departure, make_booking):
    b = make_booking(departure, customer, refund_status="processing", refund_amount=10000,
                     vendor_payout_amount=0, platform_cut=0)
    _post(client, _refund_event("refund.failed", "rfnd_wh_2", b.razorpay_payment_id, 1000000))
    failed = reload(db, Booking, b.id)
    assert failed.refund_status == "rejected"
    assert failed.refund_date is None
    assert (failed.vendor_payout_amount, failed.platform_cut) == (8500, 1500)
