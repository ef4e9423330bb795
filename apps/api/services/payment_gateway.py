"""Payment gateway access (Razorpay orders and checkout signatures)"""
import hmac
import hashlib
import logging
from typing import Dict, Optional

logger = logging.getLogger(__name__)


def compute_signature(key_secret: str, order_id: str, payment_id: str) -> str:
    """Checkout signature: HMAC-SHA256 of "order_id|payment_id" keyed by the secret"""
    return hmac.new(
        key_secret.encode(),
        f"{order_id}|{payment_id}".encode(),
        hashlib.sha256
    ).hexdigest()


class PaymentGatewayError(Exception):
    """The gateway rejected or failed a request"""


class PaymentGateway:
    """Order creation plus signature verification against the key secret"""

    def __init__(self, key_id: str, key_secret: str):
        self.key_id = key_id
        self.key_secret = key_secret

    def create_order(self, amount: int, currency: str, receipt: str, notes: Optional[Dict[str, str]] = None) -> dict:
        raise NotImplementedError

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        expected = compute_signature(self.key_secret, order_id, payment_id)
        return hmac.compare_digest(expected, signature or "")


class RazorpayGateway(PaymentGateway):
    def __init__(self, key_id: str, key_secret: str):
        super().__init__(key_id, key_secret)
        import razorpay
        self.client = razorpay.Client(auth=(key_id, key_secret))

    def create_order(self, amount: int, currency: str, receipt: str, notes: Optional[Dict[str, str]] = None) -> dict:
        try:
            return self.client.order.create({
                "amount": amount,  # already in paise
                "currency": currency,
                "receipt": receipt,
                "notes": notes or {},
            })
        except Exception as e:
            logger.error(f"Razorpay order creation failed: {e}")
            raise PaymentGatewayError(str(e)) from e
