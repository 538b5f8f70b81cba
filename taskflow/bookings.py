# taskflow/bookings.py
import logging
import uuid
from datetime import date, datetime, time, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool
from supabase import Client

from . import config
from .contracts import mirror_booking, mirror_status
from .customers import save_customer_information
from .deps import db_error, fetch_one, get_supabase, get_user, now_iso, now_utc
from .models import (
    BookingCreate,
    BookingStatus,
    BookingStatusUpdate,
    BookingValidation,
    ClientBookings,
    CustomerFields,
    CustomerInformationIn,
    ServiceBooking,
)
from .notifications import notify_status_change, schedule_booking_notifications
from .validation import (
    address_warnings,
    has_required_fields,
    validate_customer_information,
    validate_schedule,
)

log = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/bookings", tags=["bookings"])


# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────
def scheduled_instant(d: date, t: time) -> datetime:
    """Wall-clock date + time in the service timezone, as a UTC instant."""
    return datetime.combine(d, t.replace(tzinfo=None), tzinfo=config.TIMEZONE).astimezone(timezone.utc)


def local_today() -> date:
    return now_utc().astimezone(config.TIMEZONE).date()


def _email_for(fields: CustomerFields, user: Dict[str, Any]) -> str:
    return fields.customer_email.strip() or user.get("auth_email") or user.get("email") or ""


def _load_booking(sb: Client, booking_id: str) -> ServiceBooking:
    try:
        row = fetch_one(sb, "bookings", id=booking_id)
    except Exception as e:
        raise db_error("load booking", e)
    if not row:
        raise HTTPException(status_code=404, detail="Booking not found")
    return ServiceBooking.model_validate(row)


def _load_active_service(sb: Client, service_id: str) -> Dict[str, Any]:
    try:
        svc = fetch_one(sb, "services", id=service_id)
    except Exception as e:
        raise db_error("load service", e)
    if not svc or not svc.get("is_active", True):
        raise HTTPException(status_code=404, detail="Service not found")
    return svc


def _insert_booking(sb: Client, booking: ServiceBooking) -> None:
    try:
        sb.table("bookings").insert(booking.model_dump(mode="json")).execute()
    except Exception as e:
        raise db_error("create booking", e)


def _ensure_open(booking: ServiceBooking) -> None:
    if booking.status.is_terminal:
        raise HTTPException(status_code=409, detail=f"Booking is already {booking.status.value}")


def _increment_total_jobs(sb: Client, provider_id: str) -> None:
    try:
        row = fetch_one(sb, "users", id=provider_id)
        if row is not None:
            total = int(row.get("total_jobs") or 0) + 1
            sb.table("users").update({"total_jobs": total, "updated_at": now_iso()}).eq("id", provider_id).execute()
    except Exception as e:
        log.warning(f"Could not update job count for provider {provider_id}: {e}")


# ──────────────────────────────────────────────────────────────────────────────
# Routes
# ──────────────────────────────────────────────────────────────────────────────
@router.post("/validate", response_model=BookingValidation)
def validate_customer_step(payload: CustomerFields, user=Depends(get_user)):
    email = _email_for(payload, user)
    errors = validate_customer_information(
        payload.customer_name, email, payload.customer_phone, payload.customer_address
    )
    return BookingValidation(
        valid=not errors,
        errors=errors,
        warnings=address_warnings(payload.customer_address),
        has_required_fields=has_required_fields(
            payload.customer_name, payload.customer_phone, payload.customer_address
        ),
    )


@router.post("", response_model=ServiceBooking, status_code=201)
async def create_booking(payload: BookingCreate, user=Depends(get_user), sb: Client = Depends(get_supabase)):
    # the Supabase client is synchronous; keep its round trips off the event loop
    svc = await run_in_threadpool(_load_active_service, sb, payload.service_id)

    email = _email_for(payload, user)
    errors = validate_customer_information(
        payload.customer_name, email, payload.customer_phone, payload.customer_address
    )
    errors += validate_schedule(payload.scheduled_date, local_today())
    if errors:
        raise HTTPException(status_code=400, detail={"message": "Invalid booking details", "errors": errors})

    now = now_utc()
    booking = ServiceBooking(
        id=str(uuid.uuid4()),
        service_id=svc["id"],
        service_name=svc.get("name") or "",
        service_price=float(svc.get("price") or 0),
        estimated_duration=svc.get("estimated_time") or "",
        provider_id=svc.get("user_id"),
        customer_name=payload.customer_name.strip(),
        customer_email=email,
        customer_phone=payload.customer_phone.strip(),
        customer_address=payload.customer_address.strip(),
        scheduled_date=payload.scheduled_date,
        scheduled_time=payload.scheduled_time.replace(tzinfo=None),
        scheduled_at=scheduled_instant(payload.scheduled_date, payload.scheduled_time),
        notes=payload.notes.strip(),
        total_amount=float(svc.get("price") or 0),
        currency=config.CURRENCY,
        created_by=user["id"],
        platform=config.PLATFORM,
        version=config.API_VERSION,
        created_at=now,
        updated_at=now,
    )

    await run_in_threadpool(_insert_booking, sb, booking)
    log.info(
        f"Booking {booking.id} created: {booking.service_name} for {booking.customer_name} "
        f"at {booking.scheduled_at.isoformat()} ({booking.formatted_price})"
    )

    # The booking is written; everything below is independent and best-effort.
    try:
        await save_customer_information(
            sb,
            CustomerInformationIn(
                full_name=booking.customer_name,
                phone_number=booking.customer_phone,
                service_address=booking.customer_address,
            ),
            user,
        )
    except Exception as e:
        log.warning(f"Could not save customer information for booking {booking.id}: {e}")
    await run_in_threadpool(mirror_booking, sb, booking)
    await run_in_threadpool(schedule_booking_notifications, sb, booking, payload.remind_day_before, now)

    return booking


@router.get("", response_model=ClientBookings)
def my_bookings(status: Optional[BookingStatus] = None, user=Depends(get_user), sb: Client = Depends(get_supabase)):
    try:
        rows = (
            sb.table("bookings")
            .select("*")
            .eq("created_by", user["id"])
            .order("created_at", desc=True)
            .execute()
        ).data or []
    except Exception as e:
        raise db_error("load bookings", e)

    bookings = [ServiceBooking.model_validate(r) for r in rows]
    shown = [b for b in bookings if status is None or b.status is status]
    return ClientBookings(
        bookings=shown,
        total=len(bookings),
        pending=sum(1 for b in bookings if b.status is BookingStatus.pending),
        completed=sum(1 for b in bookings if b.status is BookingStatus.completed),
    )


@router.get("/{booking_id}", response_model=ServiceBooking)
def get_booking(booking_id: str, user=Depends(get_user), sb: Client = Depends(get_supabase)):
    booking = _load_booking(sb, booking_id)
    if user["id"] not in (booking.created_by, booking.provider_id):
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking


@router.post("/{booking_id}/cancel", response_model=ServiceBooking)
def cancel_booking(booking_id: str, user=Depends(get_user), sb: Client = Depends(get_supabase)):
    booking = _load_booking(sb, booking_id)
    if booking.created_by != user["id"]:
        raise HTTPException(status_code=403, detail="You can only cancel your own bookings")
    _ensure_open(booking)

    ts = now_iso()
    changes = {
        "status": BookingStatus.cancelled.value,
        "cancelled_by": user["id"],
        "cancelled_at": ts,
        "updated_at": ts,
    }
    try:
        sb.table("bookings").update(changes).eq("id", booking_id).execute()
    except Exception as e:
        raise db_error("cancel booking", e)
    log.info(f"Booking {booking_id} cancelled by client {user['id']}")

    cancelled = booking.model_copy(update={
        "status": BookingStatus.cancelled,
        "cancelled_by": user["id"],
        "cancelled_at": datetime.fromisoformat(ts),
        "updated_at": datetime.fromisoformat(ts),
    })
    mirror_status(sb, booking_id, BookingStatus.cancelled)
    notify_status_change(sb, cancelled, BookingStatus.cancelled)
    return cancelled


@router.patch("/{booking_id}/status", response_model=ServiceBooking)
def update_status(
    booking_id: str,
    req: BookingStatusUpdate,
    user=Depends(get_user),
    sb: Client = Depends(get_supabase),
):
    booking = _load_booking(sb, booking_id)
    if booking.provider_id != user["id"]:
        raise HTTPException(status_code=403, detail="Only the service provider can change the status")
    _ensure_open(booking)

    ts = now_iso()
    changes = {"status": req.status.value, "updated_at": ts}
    if req.status is BookingStatus.cancelled:
        changes.update(cancelled_by=user["id"], cancelled_at=ts)
    try:
        sb.table("bookings").update(changes).eq("id", booking_id).execute()
    except Exception as e:
        raise db_error("update booking", e)
    log.info(f"Booking {booking_id}: {booking.status.value} -> {req.status.value}")

    updated = ServiceBooking.model_validate({**booking.model_dump(), **changes})
    mirror_status(sb, booking_id, req.status)
    notify_status_change(sb, updated, req.status, message=req.message)
    if req.status is BookingStatus.completed:
        _increment_total_jobs(sb, user["id"])
    return updated
