import hashlib
import hmac
from dataclasses import dataclass
import requests

from tripbook.core.errors import GatewayError


@dataclass
class RazorpayConfig:
    key_id: str             # rzp_test_... / rzp_live_...
    key_secret: str         # basic-auth password; also signs checkout responses
    webhook_secret: str = ""  # set per webhook in the Razorpay dashboard
    api_base: str = "https://api.razorpay.com/v1"
    timeout: int = 25


def _hmac_sha256_hex(secret: str, msg: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), msg, hashlib.sha256).hexdigest()


class RazorpayClient:
    """Thin REST client. Amounts are in paise; the caller converts."""

    def __init__(self, cfg: RazorpayConfig):
        self.cfg = cfg
        self._session = requests.Session()
        self._session.auth = (cfg.key_id, cfg.key_secret)
        self._session.headers.update({"Content-Type": "application/json", "Accept": "application/json"})

    def request(self, method: str, path: str, payload: dict | None = None) -> dict:
        url = f"{self.cfg.api_base.rstrip('/')}{path}"
        try:
            r = self._session.request(method=method.upper(), url=url, json=payload, timeout=self.cfg.timeout)
        except requests.RequestException as e:
            raise GatewayError(f"Razorpay unreachable: {e.__class__.__name__}") from e
        try:
            data = r.json() if r.text else {}
        except ValueError:
            data = {"raw": r.text}
        if r.status_code >= 400:
            err = data.get("error") if isinstance(data, dict) else None
            desc = (err or {}).get("description") if isinstance(err, dict) else None
            raise GatewayError(f"Razorpay {r.status_code}: {desc or data}", details={"status": r.status_code})
        return data

    def create_order(self, *, amount: int, currency: str, receipt: str, notes: dict[str, str]) -> dict:
        payload = {"amount": int(amount), "currency": currency, "receipt": receipt, "notes": notes}
        return self.request("POST", "/orders", payload)

    def fetch_payment(self, payment_id: str) -> dict:
        return self.request("GET", f"/payments/{payment_id}")

    def refund_payment(self, *, payment_id: str, amount: int, notes: dict[str, str]) -> dict:
        payload = {"amount": int(amount), "notes": notes}
        return self.request("POST", f"/payments/{payment_id}/refund", payload)

    def create_transfer(self, *, account: str, amount: int, currency: str, notes: dict[str, str]) -> dict:
        payload = {"account": account, "amount": int(amount), "currency": currency, "notes": notes}
        return self.request("POST", "/transfers", payload)

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        # Checkout signs "<order_id>|<payment_id>" with the key secret.
        if not (order_id and payment_id and signature and self.cfg.key_secret):
            return False
        expected = _hmac_sha256_hex(self.cfg.key_secret, f"{order_id}|{payment_id}".encode("utf-8"))
        return hmac.compare_digest(expected, signature)

    def verify_webhook_signature(self, body: bytes, signature: str) -> bool:
        if not (signature and self.cfg.webhook_secret):
            return False
        expected = _hmac_sha256_hex(self.cfg.webhook_secret, body)
        return hmac.compare_digest(expected, signature)
