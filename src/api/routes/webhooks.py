"""Webhook API routes for payment providers."""

import json
import logging

from fastapi import APIRouter, HTTPException, Request, status

from src.core.paystack import get_paystack_client
from src.services.checkout_service import CheckoutService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/paystack",
    status_code=status.HTTP_200_OK,
    summary="Handle Paystack webhooks",
    description="Receives Paystack events. Requires a valid x-paystack-signature.",
)
async def paystack_webhook(request: Request) -> dict[str, str]:
    """Handle Paystack webhook events.

    Handles `charge.success` by marking the order with that reference paid.

    Raises:
        HTTPException: 400 if the signature is missing or invalid.
    """
    payload = await request.body()
    signature = request.headers.get("x-paystack-signature", "")

    if not get_paystack_client().verify_signature(payload, signature):
        logger.warning("Invalid Paystack webhook signature")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        )

    try:
        event = json.loads(payload)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload") from e

    logger.info("Processing Paystack webhook event: %s", event.get("event"))
    await CheckoutService().handle_paystack_event(event)
    return {"status": "received"}


@router.post(
    "/stripe",
    status_code=status.HTTP_200_OK,
    summary="Handle Stripe webhooks",
    description="Receives Stripe events. Requires a valid Stripe-Signature.",
)
async def stripe_webhook(request: Request) -> dict[str, str]:
    """Handle Stripe webhook events.

    Handles `payment_intent.succeeded` by marking the order named in the
    intent's metadata paid. Other events are acknowledged and ignored.

    Raises:
        HTTPException: 400 if the signature is missing or invalid.
    """
    payload = await request.body()

    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        logger.error("Missing Stripe-Signature header in webhook request")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe-Signature header",
        )

    service = CheckoutService()
    try:
        event = service.verify_stripe_signature(payload, sig_header)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        ) from e

    logger.info("Processing Stripe webhook event: %s", event.get("type"))
    await service.handle_stripe_event(event)
    return {"status": "received"}
