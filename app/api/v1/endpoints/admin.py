"""Admin endpoints for ConsultDesk API.

All routes require the shared admin secret (``X-Admin-Secret`` header or
``admin_secret`` query param).
"""

import logging
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, and_, desc
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.dependencies import Services, get_business_id, get_services, require_admin_secret
from app.models.booking import Booking, BookingStatus, PaymentStatus
from app.models.business import Business
from app.models.consultant import Consultant, ConsultantStatus
from app.schemas.admin import (
    AssignRequest,
    CounterOut,
    DashboardStats,
    MessageResponse,
    ReminderRunResult,
    StatusUpdate,
)
from app.schemas.booking import BookingOut
from app.schemas.business import BusinessSettingsOut, BusinessSettingsUpdate, OffDayRequest
from app.schemas.consultant import ConsultantCreate, ConsultantOut, ConsultantUpdate
from app.services.availability import blackout_conflicts
from app.services.reference_ids import format_reference_id
from app.utils.time_window import parse_date, safe_timezone, to_interval, window_between

router = APIRouter(dependencies=[Depends(require_admin_secret)])
logger = logging.getLogger(__name__)


async def _load_business(db: AsyncSession, business_id: str) -> Business:
    business = await db.get(Business, business_id)
    if not business:
        raise HTTPException(status_code=404, detail="Business not found")
    return business


async def _load_consultant(db: AsyncSession, business_id: str, consultant_id: str) -> Consultant:
    consultant = await db.get(Consultant, consultant_id)
    if not consultant or consultant.business_id != business_id:
        raise HTTPException(status_code=404, detail="Consultant not found")
    return consultant


def _validated_slots(slots) -> list[dict]:
    """Blackout windows as plain dicts; rejects windows whose end is not after their start."""
    result = []
    for slot in slots:
        window_between(slot.date, slot.start_time, slot.end_time)
        result.append(slot.model_dump())
    return result


# ============================================================================
# DASHBOARD
# ============================================================================

@router.get("/dashboard", response_model=DashboardStats)
async def get_dashboard(
    business_id: str = Depends(get_business_id),
    db: AsyncSession = Depends(get_db),
):
    business = await _load_business(db, business_id)
    today = datetime.now(safe_timezone(business.timezone, settings.BUSINESS_TIMEZONE)).date()

    status_rows = await db.execute(
        select(Booking.status, func.count(Booking.reference_id))
        .where(Booking.business_id == business.id)
        .group_by(Booking.status)
    )
    by_status = {s.value: 0 for s in BookingStatus}
    for row_status, count in status_rows.all():
        by_status[row_status.value] = count

    paid = and_(
        Booking.business_id == business.id,
        Booking.payment_status == PaymentStatus.COMPLETED,
        Booking.status != BookingStatus.CANCELLED,
    )
    paid_bookings = (await db.execute(select(func.count(Booking.reference_id)).where(paid))).scalar() or 0
    revenue = (await db.execute(select(func.sum(Booking.amount)).where(paid))).scalar() or 0
    today_bookings = (
        await db.execute(select(func.count(Booking.reference_id)).where(paid, Booking.date == today))
    ).scalar() or 0
    active_consultants = (
        await db.execute(
            select(func.count(Consultant.id)).where(
                Consultant.business_id == business.id,
                Consultant.status == ConsultantStatus.ACTIVE,
            )
        )
    ).scalar() or 0

    return DashboardStats(
        total_bookings=sum(by_status.values()),
        by_status=by_status,
        paid_bookings=paid_bookings,
        revenue=float(revenue),
        today_bookings=today_bookings,
        active_consultants=active_consultants,
    )


# ============================================================================
# BOOKINGS
# ============================================================================

@router.get("/bookings", response_model=list[BookingOut])
async def list_bookings(
    status: Optional[BookingStatus] = Query(None),
    date: Optional[str] = Query(None),
    consultant_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    business_id: str = Depends(get_business_id),
    db: AsyncSession = Depends(get_db),
):
    query = select(Booking).where(Booking.business_id == business_id)
    if status:
        query = query.where(Booking.status == status)
    if date:
        query = query.where(Booking.date == parse_date(date))
    if consultant_id is not None:
        query = query.where(Booking.assigned_consultant == consultant_id)

    result = await db.execute(query.order_by(desc(Booking.created_at)).offset(offset).limit(limit))
    return result.scalars().all()


@router.get("/bookings/{reference_id}", response_model=BookingOut)
async def get_booking(reference_id: str, services: Services = Depends(get_services)):
    return await services.lifecycle.get(reference_id)


@router.patch("/bookings/{reference_id}/status", response_model=BookingOut)
async def update_booking_status(
    reference_id: str,
    payload: StatusUpdate,
    services: Services = Depends(get_services),
):
    booking = await services.lifecycle.set_status(reference_id, payload.status)
    logger.info("Admin set %s to %s", reference_id, payload.status.value)
    return booking


@router.patch("/bookings/{reference_id}/assign", response_model=BookingOut)
async def assign_consultant(
    reference_id: str,
    payload: AssignRequest,
    services: Services = Depends(get_services),
):
    return await services.lifecycle.assign(reference_id, payload.consultant_id)


@router.post("/bookings/{reference_id}/cancel", response_model=BookingOut)
async def cancel_booking(reference_id: str, services: Services = Depends(get_services)):
    return await services.lifecycle.cancel(reference_id)


# ============================================================================
# CONSULTANTS
# ============================================================================

@router.get("/consultants", response_model=list[ConsultantOut])
async def list_consultants(
    business_id: str = Depends(get_business_id),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Consultant).where(Consultant.business_id == business_id).order_by(Consultant.created_at)
    )
    return result.scalars().all()


@router.post("/consultants", response_model=ConsultantOut, status_code=201)
async def create_consultant(
    payload: ConsultantCreate,
    business_id: str = Depends(get_business_id),
    db: AsyncSession = Depends(get_db),
):
    business = await _load_business(db, business_id)
    consultant = Consultant(
        business_id=business.id,
        name=payload.name,
        email=payload.email,
        phone=payload.phone,
        specialization=payload.specialization,
        experience=payload.experience,
        status=payload.status,
        unavailable_slots=_validated_slots(payload.unavailable_slots),
    )
    db.add(consultant)
    await db.commit()
    await db.refresh(consultant)
    logger.info("Consultant %s created for business %s", consultant.id, business.id)
    return consultant


@router.patch("/consultants/{consultant_id}", response_model=ConsultantOut)
async def update_consultant(
    consultant_id: str,
    payload: ConsultantUpdate,
    business_id: str = Depends(get_business_id),
    db: AsyncSession = Depends(get_db),
):
    consultant = await _load_consultant(db, business_id, consultant_id)
    updates = payload.model_dump(exclude_unset=True, exclude={"unavailable_slots"})
    for field, value in updates.items():
        setattr(consultant, field, value)
    if payload.unavailable_slots is not None:
        consultant.unavailable_slots = _validated_slots(payload.unavailable_slots)
    consultant.updated_at = datetime.utcnow()
    await db.commit()
    await db.refresh(consultant)
    return consultant


@router.delete("/consultants/{consultant_id}", response_model=MessageResponse)
async def delete_consultant(
    consultant_id: str,
    business_id: str = Depends(get_business_id),
    db: AsyncSession = Depends(get_db),
):
    consultant = await _load_consultant(db, business_id, consultant_id)
    await db.delete(consultant)
    await db.commit()
    logger.info("Consultant %s deleted", consultant_id)
    return MessageResponse(message="Consultant deleted")


@router.get("/consultants/{consultant_id}/conflicts")
async def consultant_blackouts_on(
    consultant_id: str,
    date: str = Query(...),
    time_slot: str = Query(...),
    duration: int = Query(...),
    business_id: str = Depends(get_business_id),
    db: AsyncSession = Depends(get_db),
):
    """Blackout windows that would block the given slot."""
    consultant = await _load_consultant(db, business_id, consultant_id)
    day = parse_date(date)
    return {"conflicts": blackout_conflicts(consultant.unavailable_slots, day, to_interval(day, time_slot, duration))}


# ============================================================================
# SETTINGS
# ============================================================================

@router.get("/settings", response_model=BusinessSettingsOut)
async def get_settings(
    business_id: str = Depends(get_business_id),
    db: AsyncSession = Depends(get_db),
):
    return _settings_out(await _load_business(db, business_id))


@router.patch("/settings", response_model=BusinessSettingsOut)
async def update_settings(
    payload: BusinessSettingsUpdate,
    business_id: str = Depends(get_business_id),
    db: AsyncSession = Depends(get_db),
):
    business = await _load_business(db, business_id)
    updates = payload.model_dump(exclude_unset=True)

    if updates.get("timezone"):
        try:
            ZoneInfo(updates["timezone"])
        except (ZoneInfoNotFoundError, ValueError):
            raise HTTPException(status_code=400, detail=f"Unknown timezone {updates['timezone']}")

    for field, value in updates.items():
        setattr(business, field, value)
    business.updated_at = datetime.utcnow()
    await db.commit()
    await db.refresh(business)
    logger.info("Settings updated for business %s: %s", business.id, sorted(updates))
    return _settings_out(business)


@router.post("/off-days", response_model=BusinessSettingsOut)
async def add_off_day(
    payload: OffDayRequest,
    business_id: str = Depends(get_business_id),
    db: AsyncSession = Depends(get_db),
):
    business = await _load_business(db, business_id)
    day = parse_date(payload.date).isoformat()
    off_days = list(business.off_days or [])
    if day not in off_days:
        off_days.append(day)
        business.off_days = sorted(off_days)
        await db.commit()
        await db.refresh(business)
    return _settings_out(business)


@router.delete("/off-days/{day}", response_model=BusinessSettingsOut)
async def remove_off_day(
    day: str,
    business_id: str = Depends(get_business_id),
    db: AsyncSession = Depends(get_db),
):
    business = await _load_business(db, business_id)
    day = parse_date(day).isoformat()
    off_days = list(business.off_days or [])
    if day not in off_days:
        raise HTTPException(status_code=404, detail="Off day not found")
    off_days.remove(day)
    business.off_days = off_days
    await db.commit()
    await db.refresh(business)
    return _settings_out(business)


def _settings_out(business: Business) -> BusinessSettingsOut:
    return BusinessSettingsOut(
        business_id=business.id,
        name=business.name,
        business_address=business.business_address,
        timezone=business.timezone,
        advance_booking_days=business.advance_booking_days,
        slot_durations=business.slot_durations or [],
        weekly_schedule=business.weekly_schedule or {},
        off_days=business.off_days or [],
        reference_prefix=business.reference_prefix,
        admin_email=business.admin_email,
        is_active=business.is_active,
    )


# ============================================================================
# REFERENCE COUNTER
# ============================================================================

@router.get("/counter", response_model=CounterOut)
async def peek_counter(
    business_id: str = Depends(get_business_id),
    services: Services = Depends(get_services),
    db: AsyncSession = Depends(get_db),
):
    business = await _load_business(db, business_id)
    current = await services.issuer.peek(business)
    return CounterOut(
        year=current["year"],
        counter=current["counter"],
        next_reference_id=format_reference_id(business.reference_prefix, current["year"], current["counter"] + 1),
    )


@router.post("/counter/reset", response_model=CounterOut)
async def reset_counter(
    business_id: str = Depends(get_business_id),
    services: Services = Depends(get_services),
    db: AsyncSession = Depends(get_db),
):
    """Force the counter back to zero. Only safe while no bookings are being created."""
    business = await _load_business(db, business_id)
    current = await services.issuer.reset(business)
    return CounterOut(year=current["year"], counter=current["counter"])


# ============================================================================
# REMINDERS
# ============================================================================

@router.post("/reminders/run", response_model=ReminderRunResult)
async def run_reminders(services: Services = Depends(get_services)):
    """Run both reminder ticks now instead of waiting for the schedule."""
    sent = await services.scheduler.run_all()
    return ReminderRunResult(sent=sent)
