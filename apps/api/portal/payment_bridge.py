"""
Payment bridge
Hosted checkout modeled as an awaitable that resolves to exactly one
outcome: PaymentSucceeded, PaymentCancelled or PaymentFailed.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from portal.models import PaymentOrder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentProof:
    """What the gateway hands back after a successful checkout"""
    order_id: str
    payment_id: str
    signature: str


@dataclass(frozen=True)
class PaymentSucceeded:
    proof: PaymentProof


@dataclass(frozen=True)
class PaymentCancelled:
    pass


@dataclass(frozen=True)
class PaymentFailed:
    reason: str


PaymentOutcome = Union[PaymentSucceeded, PaymentCancelled, PaymentFailed]


@dataclass(frozen=True)
class CheckoutRequest:
    key_id: str
    order: PaymentOrder
    clinic_name: str
    description: str
    patient_name: str
    patient_phone: str


class Checkout:
    """Opens a hosted checkout and waits for its outcome"""

    async def open(self, request: CheckoutRequest) -> PaymentOutcome:
        raise NotImplementedError


def checkout_options(request: CheckoutRequest) -> Dict[str, Any]:
    """Options understood by the Razorpay checkout SDK, minus callbacks"""
    return {
        "key": request.key_id,
        "amount": request.order.amount,
        "currency": request.order.currency,
        "order_id": request.order.id,
        "name": request.clinic_name,
        "description": request.description,
        "prefill": {"name": request.patient_name, "contact": request.patient_phone},
    }


class CallbackCheckout(Checkout):
    """
    Adapts a callback-style SDK to Checkout.

    `launch` receives the checkout options with three callbacks attached:
    `handler(response)` on success, `modal.ondismiss()` when the user closes
    the window, and `payment.failed(response)` on a gateway failure. The first
    callback to fire settles the outcome; later ones are ignored.

    `handler` and `modal` are checkout options and can be handed to the SDK
    as they are. `payment.failed` is an event, not an option: `launch` must
    pop it and register it with the SDK's event hook (Razorpay's
    `rzp.on("payment.failed", ...)`).
    """

    def __init__(self, launch: Callable[[Dict[str, Any]], None]):
        self.launch = launch

    async def open(self, request: CheckoutRequest) -> PaymentOutcome:
        loop = asyncio.get_running_loop()
        outcome: "asyncio.Future[PaymentOutcome]" = loop.create_future()

        def settle(result: PaymentOutcome):
            if not outcome.done():
                outcome.set_result(result)

        def settle_threadsafe(result: PaymentOutcome):
            loop.call_soon_threadsafe(settle, result)

        def on_success(response: Dict[str, Any]):
            try:
                proof = PaymentProof(
                    order_id=response["razorpay_order_id"],
                    payment_id=response["razorpay_payment_id"],
                    signature=response["razorpay_signature"],
                )
            except (KeyError, TypeError):
                logger.warning("Checkout reported success without a complete payment proof")
                settle_threadsafe(PaymentFailed("Incomplete payment response from the gateway"))
                return
            settle_threadsafe(PaymentSucceeded(proof))

        def on_dismiss():
            settle_threadsafe(PaymentCancelled())

        def on_failure(response: Optional[Dict[str, Any]] = None):
            error = (response or {}).get("error") or {}
            settle_threadsafe(PaymentFailed(error.get("description") or "Payment failed"))

        options = checkout_options(request)
        options["handler"] = on_success
        options["modal"] = {"ondismiss": on_dismiss}
        options["payment.failed"] = on_failure

        self.launch(options)
        return await outcome
