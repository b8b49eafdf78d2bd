"""Public booking endpoints: settings, day view, checkout, payment verification, manage booking."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.dependencies import Services, get_business_id, get_services
from app.models.booking import Booking, BookingStatus, PaymentStatus
from app.models.business import Business
from app.models.consultant import Consultant
from app.schemas.booking import (
    BookingOut,
    CreateOrderRequest,
    CreateOrderResponse,
    RescheduleRequest,
    SlotsResponse,
    VerifyPaymentRequest,
)
from app.schemas.business import PublicSettingsOut
from app.schemas.consultant import ConsultantPublic
from app.services import payments
from app.services.availability import shares_pool
from app.services.booking_lifecycle import BookingRequest, resolve_price
from app.utils.time_window import parse_date

router = APIRouter()
logger = logging.getLogger(__name__)


async def _load_business(db: AsyncSession, business_id: str) -> Business:
    business = await db.get(Business, business_id)
    if not business or not business.is_active:
        raise HTTPException(status_code=404, detail="Business not found")
    return business


@router.get("/settings", response_model=PublicSettingsOut)
async def get_public_settings(
    business_id: str = Depends(get_business_id),
    db: AsyncSession = Depends(get_db),
):
    business = await _load_business(db, business_id)
    return PublicSettingsOut(
        business_id=business.id,
        name=business.name,
        business_address=business.business_address,
        timezone=business.timezone,
        advance_booking_days=business.advance_booking_days,
        slot_durations=business.slot_durations or [],
        weekly_schedule=business.weekly_schedule or {},
        off_days=business.off_days or [],
    )


@router.get("/slots", response_model=SlotsResponse)
async def get_day_slots(
    date: str = Query(..., description="YYYY-MM-DD"),
    consultant_id: Optional[str] = Query(None),
    business_id: str = Depends(get_business_id),
    db: AsyncSession = Depends(get_db),
):
    """Off-day / closed-day flags, taken slots and the consultant's blackout windows for one day."""
    business = await _load_business(db, business_id)
    day = parse_date(date)

    is_off_day = day.isoformat() in (business.off_days or [])
    schedule = (business.weekly_schedule or {}).get(day.strftime("%A").lower())
    is_closed = schedule is not None and not schedule.get("enabled", True)
    working_hours = None
    if schedule and schedule.get("enabled", True):
        working_hours = {"start": schedule.get("start"), "end": schedule.get("end")}

    result = await db.execute(
        select(Booking).where(
            and_(
                Booking.business_id == business.id,
                Booking.date == day,
                Booking.payment_status == PaymentStatus.COMPLETED,
                Booking.status != BookingStatus.CANCELLED,
            )
        )
    )
    booked = [
        {
            "time_slot": b.time_slot,
            "duration_minutes": b.duration_minutes,
            "assigned_consultant": b.assigned_consultant or "",
        }
        for b in result.scalars().all()
        if shares_pool(consultant_id, b.assigned_consultant)
    ]

    blocked = []
    if consultant_id:
        consultant = await db.get(Consultant, consultant_id)
        if consultant and consultant.business_id == business.id:
            blocked = [s for s in consultant.unavailable_slots or [] if s.get("date") == day.isoformat()]

    return SlotsResponse(
        date=day,
        is_off_day=is_off_day,
        is_closed=is_closed,
        working_hours=working_hours,
        booked_slots=booked,
        blocked_windows=blocked,
    )


@router.get("/consultants/available", response_model=list[ConsultantPublic])
async def get_available_consultants(
    date: str = Query(...),
    time_slot: str = Query(...),
    duration: int = Query(...),
    business_id: str = Depends(get_business_id),
    services: Services = Depends(get_services),
):
    return await services.resolver.list_available_consultants(business_id, date, time_slot, duration)


@router.post("/create-order", response_model=CreateOrderResponse)
async def create_order(
    payload: CreateOrderRequest,
    business_id: str = Depends(get_business_id),
    services: Services = Depends(get_services),
    db: AsyncSession = Depends(get_db),
):
    """Create the draft booking and its Stripe PaymentIntent.

    The reference id is issued here; the booking stays ``draft`` until the
    payment is verified.
    """
    if not settings.STRIPE_API_KEY:
        raise HTTPException(status_code=503, detail="Payments are not configured. Please contact support.")

    business = await _load_business(db, payload.business_id or business_id)
    amount = resolve_price(business, payload.duration)

    booking = await services.lifecycle.create(
        BookingRequest(
            business_id=business.id,
            customer_name=payload.customer_name,
            customer_email=payload.customer_email,
            customer_phone=payload.customer_phone,
            date=payload.date,
            time_slot=payload.time_slot,
            duration_minutes=payload.duration,
            consultant_id=payload.consultant_id or "",
            consult_note=payload.consult_note or "",
            amount=amount,
        )
    )

    intent = payments.create_payment_intent(
        amount, booking.reference_id, business.id, customer_email=booking.customer_email
    )
    if intent is None:
        await services.lifecycle.cancel(booking.reference_id)
        raise HTTPException(status_code=502, detail="Failed to create payment order")

    await services.lifecycle.attach_payment_order(booking.reference_id, intent.id)
    logger.info("Order %s created for booking %s", intent.id, booking.reference_id)

    return CreateOrderResponse(
        reference_id=booking.reference_id,
        payment_intent_id=intent.id,
        client_secret=intent.client_secret,
        amount=float(amount),
        currency=settings.PAYMENT_CURRENCY,
    )


@router.post("/verify-payment", response_model=BookingOut)
async def verify_payment(
    payload: VerifyPaymentRequest,
    services: Services = Depends(get_services),
):
    """Client-side confirmation after Stripe reports success in the browser."""
    intent = payments.retrieve_payment_intent(payload.payment_intent_id)
    if not payments.payment_intent_settles(intent, payload.reference_id):
        raise HTTPException(status_code=400, detail="Payment verification failed")

    return await services.lifecycle.mark_payment_completed(payload.reference_id, payment_id=payload.payment_intent_id)


@router.get("/{reference_id}", response_model=BookingOut)
async def get_booking(reference_id: str, services: Services = Depends(get_services)):
    return await services.lifecycle.get(reference_id)


@router.patch("/{reference_id}", response_model=BookingOut)
async def reschedule_booking(
    reference_id: str,
    payload: RescheduleRequest,
    services: Services = Depends(get_services),
):
    if payload.date is None and payload.time_slot is None and payload.duration_minutes is None:
        raise HTTPException(status_code=400, detail="Nothing to update")
    return await services.lifecycle.reschedule(
        reference_id,
        date=payload.date,
        time_slot=payload.time_slot,
        duration_minutes=payload.duration_minutes,
    )


@router.post("/{reference_id}/cancel", response_model=BookingOut)
async def cancel_booking(reference_id: str, services: Services = Depends(get_services)):
    return await services.lifecycle.cancel(reference_id)
