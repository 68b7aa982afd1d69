"""Payment Routes - order creation and payment verification"""

import logging

from fastapi import APIRouter, Depends

from ..dependencies import Services, get_services
from ..schemas import CreateOrderRequest, VerifyPaymentRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["payments"])


@router.post("/create-order")
def create_order(body: CreateOrderRequest, services: Services = Depends(get_services)):
    gateway = services.order_gateway()
    try:
        order = gateway.create_order(body.amount, currency=body.currency, receipt=body.receipt)
    finally:
        if gateway is not services.gateway:
            gateway.close()
    return {
        "success": True,
        "order": {
            "id": order.order_id,
            "amount": order.amount,
            "currency": order.currency,
            "receipt": order.receipt,
            "status": order.status,
        },
    }


@router.post("/verify-payment")
def verify_payment(body: VerifyPaymentRequest, services: Services = Depends(get_services)):
    verification = services.verifier.verify_and_activate(
        order_id=body.razorpay_order_id,
        payment_id=body.razorpay_payment_id,
        signature=body.razorpay_signature,
        user_id=body.user_id,
        amount=body.amount,
        currency=body.currency,
        topic_id=body.topic_id,
        subscription_id=body.subscription_id,
        plan_name=body.plan_name,
    )
    message = "Payment already processed" if verification.already_processed else "Payment verified successfully"
    return {"success": True, "message": message, "payment": verification}
