"""Stripe webhook for booking payments."""

import logging
import stripe
from fastapi import APIRouter, Depends, HTTPException, Request

from app.core.dependencies import Services, get_services
from app.core.exceptions import BookingNotFound, InvalidTransition, SlotNoLongerAvailable
from app.services.payments import construct_webhook_event, webhook_verification_enabled

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/webhook")
async def stripe_webhook(request: Request, services: Services = Depends(get_services)):
    """Handle Stripe payment events.

    ``payment_intent.succeeded`` confirms the booking named in the intent
    metadata. The client-side verify call may already have done so; payment
    confirmation is idempotent.
    """
    if not webhook_verification_enabled():
        logger.error("Stripe webhook received but STRIPE_WEBHOOK_SECRET is not configured")
        raise HTTPException(status_code=503, detail="Payment webhooks are not configured")

    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    try:
        event = construct_webhook_event(payload, sig_header)
    except ValueError:
        logger.error("Invalid webhook payload")
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError:
        logger.error("Invalid webhook signature")
        raise HTTPException(status_code=400, detail="Invalid signature")

    event_type = event["type"]
    data = event["data"]["object"]
    reference_id = (data.get("metadata") or {}).get("reference_id")

    logger.info("Stripe webhook received: %s (%s)", event_type, reference_id)

    if event_type not in ("payment_intent.succeeded", "payment_intent.payment_failed"):
        logger.info("Unhandled Stripe event type: %s", event_type)
        return {"status": "ignored"}

    if not reference_id:
        logger.warning("Stripe event %s carries no reference id", event.get("id"))
        return {"status": "ignored"}

    try:
        if event_type == "payment_intent.succeeded":
            await services.lifecycle.mark_payment_completed(reference_id, payment_id=data.get("id"))
        else:
            await services.lifecycle.mark_payment_failed(reference_id)
    except BookingNotFound:
        logger.warning("Stripe event for unknown booking %s", reference_id)
        return {"status": "ignored"}
    except (SlotNoLongerAvailable, InvalidTransition) as e:
        # Paid but unconfirmable: needs a manual refund
        logger.error("Payment for %s needs manual resolution: %s", reference_id, e.message)
        return {"status": "manual_review"}

    return {"status": "ok"}
