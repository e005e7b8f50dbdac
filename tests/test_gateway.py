import pytest
import requests

from conftest import KEY_SECRET, FakeRazorpay, sign_checkout, sign_webhook
from tripbook.core.config import settings
from tripbook.core.errors import BookingError, GatewayError
from tripbook.services.gateway import (
    OrderMetadata, PaymentGateway, RefundNotes, build_gateway, from_minor, to_minor, _notes,
)
from tripbook.services.razorpay_client import RazorpayClient, RazorpayConfig


class _Resp:
    def __init__(self, status_code, data):
        self.status_code = status_code
        self._data = data
        self.text = "x" if data is not None else ""

    def json(self):
        return self._data


def test_minor_units():
    assert to_minor(10000) == 1000000
    assert to_minor(0) == 0
    assert from_minor(1000050) == 10001
    assert from_minor(1000049) == 10000
    assert from_minor(None) is None


def test_notes_are_flat_strings():
    notes = _notes(RefundNotes(bookingId="b1", reason="Customer cancellation", refundPercentage=50))
    assert notes == {"bookingId": "b1", "reason": "Customer cancellation", "refundPercentage": "50", "bookingFailure": "false"}
    meta = _notes(OrderMetadata("b1", "p1", "d1", "u1", 2, "2026-03-01T00:00:00+00:00", 10000))
    assert meta["numPeople"] == "2"
    assert all(isinstance(v, str) for v in meta.values())


def test_order_sends_paise_and_receipt(razorpay, gateway):
    order = gateway.create_order(10000, "INR", "booking_abc", OrderMetadata("b1", "p1", "d1", "u1", 2, "t", 10000))
    sent = razorpay.orders[order.order_id]
    assert sent["amount"] == 1000000
    assert sent["receipt"] == "booking_abc"
    assert order.amount_minor == 1000000


def test_checkout_signature(gateway):
    assert gateway.verify_signature("order_1", "pay_1", sign_checkout("order_1", "pay_1"))
    assert not gateway.verify_signature("order_1", "pay_2", sign_checkout("order_1", "pay_1"))
    assert not gateway.verify_signature("order_1", "pay_1", "")


def test_webhook_signature(gateway):
    body = b'{"event":"payment.captured"}'
    assert gateway.verify_webhook(body, sign_webhook(body))
    assert not gateway.verify_webhook(body + b" ", sign_webhook(body))
    assert not PaymentGateway(FakeRazorpay(webhook_secret="")).verify_webhook(body, sign_webhook(body))


def test_refund_result_is_converted(razorpay, gateway):
    razorpay.refund_status = "pending"
    result = gateway.refund("pay_1", 5000, RefundNotes(bookingId="b1", reason="r"))
    assert result.status == "pending"
    assert result.amount == 5000
    assert razorpay.refunds[0]["amount"] == 500000


def test_client_maps_http_errors(monkeypatch):
    client = RazorpayClient(RazorpayConfig(key_id="k", key_secret=KEY_SECRET))
    monkeypatch.setattr(client._session, "request", lambda **kw: _Resp(400, {"error": {"description": "Bad amount"}}))
    with pytest.raises(GatewayError) as exc:
        client.fetch_payment("pay_1")
    assert "Bad amount" in exc.value.message
    assert exc.value.status_code == 502


def test_client_maps_transport_errors(monkeypatch):
    client = RazorpayClient(RazorpayConfig(key_id="k", key_secret=KEY_SECRET))

    def boom(**kw):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(client._session, "request", boom)
    with pytest.raises(GatewayError):
        client.create_transfer(account="acc_1", amount=100, currency="INR", notes={})


def test_missing_ids_are_gateway_errors(monkeypatch, razorpay, gateway):
    monkeypatch.setattr(razorpay, "request", lambda method, path, payload=None: {})
    with pytest.raises(GatewayError):
        gateway.refund("pay_1", 100, RefundNotes(bookingId="b1", reason="r"))


def test_build_gateway_requires_keys(monkeypatch):
    monkeypatch.setattr(settings, "RAZORPAY_KEY_ID", "")
    with pytest.raises(BookingError) as exc:
        build_gateway()
    assert exc.value.status_code == 500
    monkeypatch.setattr(settings, "RAZORPAY_KEY_ID", "rzp_test_k")
    monkeypatch.setattr(settings, "RAZORPAY_KEY_SECRET", "s")
    assert build_gateway().key_id == "rzp_test_k"
