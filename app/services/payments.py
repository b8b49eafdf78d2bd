"""Stripe payment service for consultation bookings.

One PaymentIntent per booking. The booking's reference id travels in the
intent metadata, which is how both the client-side verification and the
signed webhook find their way back to the booking.
"""

import logging
from decimal import Decimal
from typing import Optional

import stripe

from app.core.config import settings

logger = logging.getLogger(__name__)

# Configure Stripe
stripe.api_key = settings.STRIPE_API_KEY

SUCCEEDED = "succeeded"


def to_minor_units(amount: Decimal | float | int) -> int:
    """Stripe expects the smallest currency unit (paise, cents)."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1")))


def create_payment_intent(
    amount: Decimal | float | int,
    reference_id: str,
    business_id: str,
    customer_email: str | None = None,
    currency: str | None = None,
) -> Optional[stripe.PaymentIntent]:
    """Create a PaymentIntent for a draft booking.

    Returns None if Stripe is not configured or the API call fails.
    """
    if not settings.STRIPE_API_KEY:
        logger.warning("Stripe not configured; skipping payment intent for %s", reference_id)
        return None

    try:
        intent = stripe.PaymentIntent.create(
            amount=to_minor_units(amount),
            currency=(currency or settings.PAYMENT_CURRENCY).lower(),
            receipt_email=customer_email,
            metadata={"reference_id": reference_id, "business_id": business_id},
            automatic_payment_methods={"enabled": True},
        )
    except stripe.StripeError as e:
        logger.error("Stripe error creating payment intent for %s: %s", reference_id, e)
        return None

    logger.info("Created payment intent %s for booking %s", intent.id, reference_id)
    return intent


def retrieve_payment_intent(payment_intent_id: str) -> Optional[stripe.PaymentIntent]:
    if not settings.STRIPE_API_KEY:
        logger.warning("Stripe not configured; cannot retrieve payment intent %s", payment_intent_id)
        return None
    try:
        return stripe.PaymentIntent.retrieve(payment_intent_id)
    except stripe.StripeError as e:
        logger.error("Stripe error retrieving payment intent %s: %s", payment_intent_id, e)
        return None


def payment_intent_settles(intent, reference_id: str) -> bool:
    """True if ``intent`` succeeded and belongs to ``reference_id``."""
    if intent is None:
        return False
    metadata = intent.get("metadata") or {}
    if metadata.get("reference_id") != reference_id:
        logger.warning(
            "Payment intent %s belongs to %s, not %s",
            intent.get("id"), metadata.get("reference_id"), reference_id,
        )
        return False
    return intent.get("status") == SUCCEEDED


def webhook_verification_enabled() -> bool:
    return bool(settings.STRIPE_WEBHOOK_SECRET)


def construct_webhook_event(payload: bytes, sig_header: str | None):
    """Verify and parse a Stripe webhook. Unsigned events are never accepted.

    Raises:
        ValueError: malformed payload
        stripe.SignatureVerificationError: bad or missing signature, or no webhook secret configured
    """
    if not webhook_verification_enabled():
        raise stripe.SignatureVerificationError("Stripe webhook secret not configured", sig_header)
    if not sig_header:
        raise stripe.SignatureVerificationError("Missing Stripe-Signature header", sig_header)
    return stripe.Webhook.construct_event(payload, sig_header, settings.STRIPE_WEBHOOK_SECRET)
