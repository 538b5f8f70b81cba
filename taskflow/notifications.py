# taskflow/notifications.py
"""
Scheduled notifications for bookings.

The API does not push anything itself. It stores one row per notification in
the ``notifications`` table with the instant it should fire; the app pulls the
due ones through ``POST /notifications/deliver`` and shows them locally.
Identifiers are deterministic, so scheduling the same notification twice
replaces the first one.

Every payload follows the app's ``{"type": ..., "bookingId": ...}``
convention so a tap can be routed without another lookup.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from supabase import Client

from .deps import db_error, get_supabase, get_user, now_iso, now_utc
from .models import (
    BookingStatus,
    DeliveredNotifications,
    DeviceRegistration,
    NotificationType,
    ScheduledNotification,
    ServiceBooking,
)

log = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/notifications", tags=["notifications"])

CONFIRMATION_DELAY = timedelta(seconds=2)
STATUS_UPDATE_DELAY = timedelta(seconds=1)
HOUR_BEFORE = timedelta(hours=1)
DAY_BEFORE = timedelta(hours=24)


def reminder_identifier(booking_id: str, before: timedelta) -> str:
    if before == HOUR_BEFORE:
        return f"booking_reminder_{booking_id}"
    if before == DAY_BEFORE:
        return f"booking_reminder_day_{booking_id}"
    return f"booking_reminder_{int(before.total_seconds())}s_{booking_id}"


def _schedule(
    sb: Client,
    *,
    identifier: str,
    user_id: str,
    ntype: NotificationType,
    body: str,
    payload: Dict[str, Any],
    fire_at: datetime,
) -> Dict[str, Any]:
    row = {
        "id": identifier,
        "user_id": user_id,
        "type": ntype.value,
        "title": ntype.title,
        "body": body,
        "payload": {"type": ntype.value, **payload},
        "fire_at": fire_at.isoformat(),
        "delivered_at": None,
        "created_at": now_iso(),
    }
    sb.table("notifications").upsert(row, on_conflict="id").execute()
    log.info(f"Scheduled {ntype.value} notification {identifier} for {row['fire_at']}")
    return row


def schedule_booking_confirmation(sb: Client, booking: ServiceBooking, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or now_utc()
    return _schedule(
        sb,
        identifier=f"booking_confirmed_{booking.id}",
        user_id=booking.created_by,
        ntype=NotificationType.booking_confirmed,
        body=(
            f"Your booking for {booking.service_name} has been confirmed for "
            f"{booking.formatted_date} at {booking.formatted_time}."
        ),
        payload={
            "bookingId": booking.id,
            "serviceName": booking.service_name,
            "scheduledDate": booking.scheduled_at.timestamp(),
        },
        fire_at=now + CONFIRMATION_DELAY,
    )


def schedule_booking_reminder(
    sb: Client,
    booking: ServiceBooking,
    before: timedelta = HOUR_BEFORE,
    now: Optional[datetime] = None,
) -> Optional[Dict[str, Any]]:
    """Reminder at ``scheduled_at - before``; nothing is stored if that has already passed."""
    now = now or now_utc()
    fire_at = booking.scheduled_at - before
    if fire_at <= now:
        log.info(f"Skipping reminder for booking {booking.id}: {fire_at.isoformat()} is in the past")
        return None

    if before >= DAY_BEFORE:
        body = f"Reminder: your {booking.service_name} service is booked for {booking.formatted_date} at {booking.formatted_time}."
    else:
        body = f"Don't forget! Your {booking.service_name} service is scheduled for {booking.formatted_time} today."

    return _schedule(
        sb,
        identifier=reminder_identifier(booking.id, before),
        user_id=booking.created_by,
        ntype=NotificationType.booking_reminder,
        body=body,
        payload={"bookingId": booking.id, "serviceName": booking.service_name},
        fire_at=fire_at,
    )


def schedule_status_update(
    sb: Client,
    *,
    booking_id: str,
    user_id: str,
    service_name: str,
    new_status: BookingStatus,
    message: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or now_utc()
    return _schedule(
        sb,
        identifier=f"status_update_{booking_id}_{int(now.timestamp() * 1000)}",
        user_id=user_id,
        ntype=NotificationType.booking_status_update,
        body=message or f"Your {service_name} booking is now {new_status.display_name}.",
        payload={"bookingId": booking_id, "serviceName": service_name, "newStatus": new_status.value},
        fire_at=now + STATUS_UPDATE_DELAY,
    )


def schedule_service_completed(sb: Client, booking: ServiceBooking, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or now_utc()
    return _schedule(
        sb,
        identifier=f"service_completed_{booking.id}",
        user_id=booking.created_by,
        ntype=NotificationType.service_completed,
        body=f"Your {booking.service_name} service has been completed successfully! Please rate your experience.",
        payload={"bookingId": booking.id, "serviceName": booking.service_name},
        fire_at=now + STATUS_UPDATE_DELAY,
    )


def schedule_booking_notifications(
    sb: Client,
    booking: ServiceBooking,
    remind_day_before: bool = True,
    now: Optional[datetime] = None,
) -> List[str]:
    """Confirmation, 1-hour reminder and optional 24-hour reminder. Each step stands alone."""
    now = now or now_utc()
    steps = [
        lambda: schedule_booking_confirmation(sb, booking, now=now),
        lambda: schedule_booking_reminder(sb, booking, HOUR_BEFORE, now=now),
    ]
    if remind_day_before:
        steps.append(lambda: schedule_booking_reminder(sb, booking, DAY_BEFORE, now=now))

    scheduled: List[str] = []
    for step in steps:
        try:
            row = step()
        except Exception as e:
            log.warning(f"Could not schedule notification for booking {booking.id}: {e}")
            continue
        if row:
            scheduled.append(row["id"])
    return scheduled


def cancel_booking_reminders(sb: Client, booking_id: str) -> None:
    ids = [reminder_identifier(booking_id, HOUR_BEFORE), reminder_identifier(booking_id, DAY_BEFORE)]
    sb.table("notifications").delete().in_("id", ids).is_("delivered_at", "null").execute()
    log.info(f"Cancelled pending reminders for booking {booking_id}")


def notify_status_change(
    sb: Client,
    booking: ServiceBooking,
    new_status: BookingStatus,
    message: Optional[str] = None,
) -> None:
    """Best-effort client notifications after a booking changes state."""
    try:
        if new_status is BookingStatus.cancelled:
            cancel_booking_reminders(sb, booking.id)
        schedule_status_update(
            sb,
            booking_id=booking.id,
            user_id=booking.created_by,
            service_name=booking.service_name,
            new_status=new_status,
            message=message,
        )
        if new_status is BookingStatus.completed:
            schedule_service_completed(sb, booking)
    except Exception as e:
        log.warning(f"Could not notify status change for booking {booking.id}: {e}")


# ──────────────────────────────────────────────────────────────────────────────
# Routes
# ──────────────────────────────────────────────────────────────────────────────
@router.post("/devices")
def register_device(body: DeviceRegistration, user=Depends(get_user), sb: Client = Depends(get_supabase)):
    row = {
        "token": body.token,
        "user_id": user["id"],
        "platform": body.platform,
        "authorized": body.authorized,
        "updated_at": now_iso(),
    }
    try:
        sb.table("device_tokens").upsert(row, on_conflict="token").execute()
    except Exception as e:
        raise db_error("register device", e)
    log.info(f"Registered {body.platform} device for user {user['id']} (authorized={body.authorized})")
    return {"ok": True, "authorized": body.authorized}


@router.get("", response_model=List[ScheduledNotification])
def list_pending(user=Depends(get_user), sb: Client = Depends(get_supabase)):
    try:
        resp = (
            sb.table("notifications")
            .select("*")
            .eq("user_id", user["id"])
            .is_("delivered_at", "null")
            .order("fire_at")
            .execute()
        )
    except Exception as e:
        raise db_error("load notifications", e)
    return resp.data or []


@router.post("/deliver", response_model=DeliveredNotifications)
def deliver_due(user=Depends(get_user), sb: Client = Depends(get_supabase)):
    now = now_iso()
    try:
        due = (
            sb.table("notifications")
            .select("*")
            .eq("user_id", user["id"])
            .is_("delivered_at", "null")
            .lte("fire_at", now)
            .order("fire_at")
            .execute()
        ).data or []
        if due:
            sb.table("notifications").update({"delivered_at": now}).in_("id", [n["id"] for n in due]).execute()
        delivered = (
            sb.table("notifications")
            .select("id")
            .eq("user_id", user["id"])
            .not_.is_("delivered_at", "null")
            .execute()
        ).data or []
    except Exception as e:
        raise db_error("deliver notifications", e)

    for n in due:
        n["delivered_at"] = now
    return {"notifications": due, "badge": len(delivered)}


@router.delete("")
def clear_all(user=Depends(get_user), sb: Client = Depends(get_supabase)):
    try:
        sb.table("notifications").delete().eq("user_id", user["id"]).execute()
    except Exception as e:
        raise db_error("clear notifications", e)
    return {"ok": True}


@router.delete("/{identifier}")
def cancel(identifier: str, user=Depends(get_user), sb: Client = Depends(get_supabase)):
    try:
        resp = sb.table("notifications").delete().eq("id", identifier).eq("user_id", user["id"]).execute()
    except Exception as e:
        raise db_error("cancel notification", e)
    if not resp.data:
        raise HTTPException(status_code=404, detail="Notification not found")
    log.info(f"Cancelled notification {identifier}")
    return {"ok": True}
