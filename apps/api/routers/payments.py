"""Online consultation payments: order creation and checkout verification"""
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlmodel import Session, select

from config import Settings, get_settings
from database import get_session
from dependencies import get_clock, get_payment_gateway
from models import (
    Booking,
    BookingStatus,
    ConsultType,
    PaymentOrder,
    PaymentOrderStatus,
    PaymentStatus,
    utcnow,
)
from schemas import BookingIntent, BookingResult, PaymentOrderResponse, PaymentVerify
from services.booking_service import (
    create_booking,
    to_appointment,
    validate_intent,
    whatsapp_links,
)
from services.payment_gateway import PaymentGateway, PaymentGatewayError
from utils.clock import ClinicClock
from utils.rate_limit import PAYMENT_LIMIT, limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookings/payment", tags=["Payments"])


@router.post("/order", response_model=PaymentOrderResponse)
@limiter.limit(PAYMENT_LIMIT)
def create_payment_order(
    request: Request,
    intent: BookingIntent,
    session: Session = Depends(get_session),
    clock: ClinicClock = Depends(get_clock),
    settings: Settings = Depends(get_settings),
    gateway: PaymentGateway = Depends(get_payment_gateway)
):
    """Create a gateway order for an online consultation. No booking exists until verification."""
    if intent.consult_type != ConsultType.ONLINE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Payment is only required for online consultations"
        )

    slot_time = validate_intent(session, intent, clock.now())
    receipt = f"consult_{intent.date:%Y%m%d}_{slot_time.replace(':', '')}_{intent.patient_phone[-4:]}"

    try:
        order = gateway.create_order(
            amount=settings.consultation_fee_paise,
            currency=settings.payment_currency,
            receipt=receipt,
            notes={
                "patient_name": intent.patient_name,
                "patient_phone": intent.patient_phone,
                "date": intent.date.isoformat(),
                "time": slot_time,
            }
        )
    except PaymentGatewayError:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Could not create the payment order. Please try again."
        )

    payment_order = PaymentOrder(
        order_id=order["id"],
        intent=intent.model_dump_json(),
        amount=order.get("amount", settings.consultation_fee_paise),
        currency=order.get("currency", settings.payment_currency),
    )
    session.add(payment_order)
    session.commit()
    logger.info("Payment order %s created for %s %s", payment_order.order_id, intent.date, slot_time)

    return PaymentOrderResponse(
        id=payment_order.order_id,
        amount=payment_order.amount,
        currency=payment_order.currency,
        key_id=gateway.key_id,
    )


@router.post("/verify", response_model=BookingResult)
@limiter.limit(PAYMENT_LIMIT)
def verify_payment(
    request: Request,
    payment_data: PaymentVerify,
    session: Session = Depends(get_session),
    clock: ClinicClock = Depends(get_clock),
    settings: Settings = Depends(get_settings),
    gateway: PaymentGateway = Depends(get_payment_gateway)
):
    """Verify the checkout signature and only then create the booking"""
    payment_order = session.exec(
        select(PaymentOrder).where(PaymentOrder.order_id == payment_data.razorpay_order_id)
    ).first()

    if not gateway.verify_signature(
        payment_data.razorpay_order_id,
        payment_data.razorpay_payment_id,
        payment_data.razorpay_signature
    ):
        logger.warning("Invalid payment signature for order %s", payment_data.razorpay_order_id)
        if payment_order and payment_order.status == PaymentOrderStatus.CREATED.value:
            payment_order.status = PaymentOrderStatus.FAILED.value
            payment_order.updated_at = utcnow()
            session.add(payment_order)
            session.commit()
        raise HTTPException(status_code=400, detail="Invalid payment signature")

    if not payment_order:
        raise HTTPException(status_code=404, detail="Payment order not found")

    # Gateways may deliver the same success twice; answer with the booking already made
    if payment_order.status == PaymentOrderStatus.PAID.value and payment_order.booking_id:
        booking = session.exec(
            select(Booking).where(Booking.booking_id == payment_order.booking_id)
        ).first()
        return BookingResult(
            message="Payment already verified",
            appointment=to_appointment(booking, settings),
            whatsapp_notifications=whatsapp_links(booking, settings),
        )

    intent = BookingIntent.model_validate(json.loads(payment_order.intent))
    payment_order.payment_id = payment_data.razorpay_payment_id
    payment_order.updated_at = utcnow()

    try:
        booking = create_booking(
            session,
            intent,
            now=clock.now(),
            status_value=BookingStatus.CONFIRMED,
            payment_status=PaymentStatus.VERIFIED,
            payment_reference=payment_data.razorpay_payment_id,
            payment_order_id=payment_order.order_id,
        )
    except HTTPException:
        # Paid, but the slot went to someone else between order and payment
        payment_order.payment_id = payment_data.razorpay_payment_id
        payment_order.status = PaymentOrderStatus.PAID_UNBOOKED.value
        session.add(payment_order)
        session.commit()
        logger.warning("Order %s paid but could not be booked; refund required", payment_order.order_id)
        raise

    payment_order.status = PaymentOrderStatus.PAID.value
    payment_order.booking_id = booking.booking_id
    session.add(payment_order)
    session.commit()

    return BookingResult(
        message="Payment verified and appointment confirmed",
        appointment=to_appointment(booking, settings),
        whatsapp_notifications=whatsapp_links(booking, settings),
    )
