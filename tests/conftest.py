import hashlib
import hmac
import itertools
import os
import uuid
from datetime import timedelta

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tripbook.api.deps import get_gateway
from tripbook.core.errors import GatewayError
from tripbook.core.security import create_access_token
from tripbook.core.timeutils import utcnow
from tripbook.db.session import Base, get_db
from tripbook.main import app
from tripbook.models.audit_log import AuditLog  # noqa: F401
from tripbook.models.booking import Booking
from tripbook.models.departure import Departure
from tripbook.models.plan import Plan
from tripbook.models.user import User
from tripbook.services import inventory_ledger
from tripbook.services.booking_service import compute_split
from tripbook.services.gateway import PaymentGateway
from tripbook.services.razorpay_client import RazorpayClient, RazorpayConfig

KEY_SECRET = "rzp_test_secret"
WEBHOOK_SECRET = "whsec_test"


def sign_checkout(order_id: str, payment_id: str) -> str:
    return hmac.new(KEY_SECRET.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


def sign_webhook(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class FakeRazorpay(RazorpayClient):
    """In-memory Razorpay: same client surface, no network."""

    def __init__(self, webhook_secret: str = WEBHOOK_SECRET):
        super().__init__(RazorpayConfig(key_id="rzp_test_key", key_secret=KEY_SECRET, webhook_secret=webhook_secret))
        self.orders: dict[str, dict] = {}
        self.payments: dict[str, dict] = {}
        self.refunds: list[dict] = []
        self.transfers: list[dict] = []
        self.calls: list[tuple[str, str]] = []
        self.fail: set[str] = set()  # "order" | "refund" | "transfer" | "payment"
        self.refund_status = "processed"
        self._seq = itertools.count(1)

    def _id(self, prefix: str) -> str:
        return f"{prefix}_{next(self._seq):06d}"

    def request(self, method: str, path: str, payload: dict | None = None) -> dict:
        self.calls.append((method, path))
        if method == "POST" and path == "/orders":
            if "order" in self.fail:
                raise GatewayError("Razorpay 500: order service unavailable")
            order = {"id": self._id("order"), **payload}
            self.orders[order["id"]] = order
            return order
        if method == "POST" and path.endswith("/refund"):
            if "refund" in self.fail:
                raise GatewayError("Razorpay 400: refund declined")
            payment_id = path.split("/")[2]
            refund = {"id": self._id("rfnd"), "payment_id": payment_id, "amount": payload["amount"],
                      "status": self.refund_status, "notes": payload["notes"]}
            self.refunds.append(refund)
            return refund
        if method == "GET" and path.startswith("/payments/"):
            if "payment" in self.fail:
                raise GatewayError("Razorpay 502: bad gateway")
            payment = self.payments.get(path.split("/")[2])
            if payment is None:
                raise GatewayError("Razorpay 400: The id provided does not exist")
            return payment
        if method == "POST" and path == "/transfers":
            if "transfer" in self.fail:
                raise GatewayError("Razorpay 400: insufficient balance")
            transfer = {"id": self._id("trf"), **payload}
            self.transfers.append(transfer)
            return transfer
        raise AssertionError(f"unexpected Razorpay call {method} {path}")

    def pay(self, order_id: str, amount: int | None = None, status: str = "captured") -> tuple[str, str]:
        """Simulate checkout; returns (payment_id, checkout signature)."""
        payment_id = self._id("pay")
        order = self.orders.get(order_id, {})
        self.payments[payment_id] = {
            "id": payment_id,
            "order_id": order_id,
            "amount": amount if amount is not None else order.get("amount"),
            "currency": "INR",
            "status": status,
        }
        return payment_id, sign_checkout(order_id, payment_id)

    def count(self, method: str, path_prefix: str) -> int:
        return sum(1 for m, p in self.calls if m == method and p.startswith(path_prefix))


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def razorpay():
    return FakeRazorpay()


@pytest.fixture
def gateway(razorpay):
    return PaymentGateway(razorpay, currency="INR")


@pytest.fixture
def client(db, gateway):
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _user(db, role: str, name: str, account_id: str | None = None) -> User:
    u = User(
        id=str(uuid.uuid4()),
        email=f"{name}@tripbook.test",
        full_name=name.title(),
        role=role,
        password_hash="!",
        is_active=True,
        razorpay_account_id=account_id,
    )
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def customer(db):
    return _user(db, "user", "asha")


@pytest.fixture
def other_customer(db):
    return _user(db, "user", "ravi")


@pytest.fixture
def vendor(db):
    return _user(db, "vendor", "himalaya", account_id="acc_vendor_1")


@pytest.fixture
def other_vendor(db):
    return _user(db, "vendor", "coastal", account_id="acc_vendor_2")


@pytest.fixture
def admin(db):
    return _user(db, "admin", "root")


def auth(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, role=user.role)}"}


@pytest.fixture
def plan(db, vendor):
    p = Plan(id=str(uuid.uuid4()), vendor_id=vendor.id, name="Spiti Valley Circuit", description="",
             price=5000, vendor_cut_percent=85, is_active=True)
    db.add(p)
    db.commit()
    return p


@pytest.fixture
def make_departure(db, plan):
    def _make(days: float = 30, capacity: int = 5, booked: int = 0, status: str = "scheduled",
              plan_id: str | None = None) -> Departure:
        d = Departure(
            id=str(uuid.uuid4()),
            plan_id=plan_id or plan.id,
            departure_date=utcnow() + timedelta(days=days),
            pickup_time="06:30",
            pickup_location="Manali bus stand",
            total_capacity=capacity,
            booked_seats=booked,
            status=status,
            is_active=True,
        )
        db.add(d)
        db.commit()
        return d
    return _make


@pytest.fixture
def departure(make_departure):
    return make_departure()


@pytest.fixture
def make_booking(db, plan):
    """Insert a booking directly, holding its seats, as if checkout already ran."""
    created = itertools.count()

    def _make(departure: Departure, user: User, num_people: int = 2, status: str = "confirmed",
              payment_status: str | None = None, **fields) -> Booking:
        trip_cost, payout, cut = compute_split(plan.price, num_people, plan.vendor_cut_percent)
        inventory_ledger.reserve(db, departure.id, num_people)
        b = Booking(
            id=str(uuid.uuid4()),
            plan_id=plan.id,
            departure_id=departure.id,
            user_id=user.id,
            trip_date=departure.departure_date,
            num_people=num_people,
            trip_cost=trip_cost,
            platform_fee=0,
            total_amount=trip_cost,
            vendor_cut_percent=plan.vendor_cut_percent,
            platform_cut=cut,
            vendor_payout_amount=payout,
            booking_status=status,
            payment_status=payment_status or ("completed" if status == "confirmed" else "pending"),
            refund_status="none",
            vendor_payout_status="pending",
            razorpay_order_id=f"order_seed_{uuid.uuid4().hex[:8]}",
            razorpay_payment_id=f"pay_seed_{uuid.uuid4().hex[:8]}" if status == "confirmed" else None,
            created_at=utcnow() + timedelta(seconds=next(created)),
        )
        for k, v in fields.items():
            setattr(b, k, v)
        db.add(b)
        db.commit()
        return b
    return _make


def reload(db, model, pk):
    db.expire_all()
    return db.get(model, pk)
