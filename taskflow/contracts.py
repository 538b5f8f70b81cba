# taskflow/contracts.py
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from supabase import Client

from . import config
from .deps import db_error, fetch_one, get_supabase, get_user, now_iso
from .models import UPCOMING_CONTRACT_STATUSES, Contract, ContractStatus, ServiceBooking
from .notifications import notify_status_change

log = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/contracts", tags=["contracts"])


def contract_row(booking: ServiceBooking) -> Dict[str, Any]:
    ts = now_iso()
    return {
        "id": booking.id,
        "customer_name": booking.customer_name,
        "service_name": booking.service_name,
        "service_type": booking.booking_type,
        "scheduled_date": booking.scheduled_at.isoformat(),
        "scheduled_time": booking.formatted_time,
        "location": booking.customer_address,
        "status": booking.status.value,
        "customer_id": booking.created_by,
        "provider_id": booking.provider_id or "",
        "service_id": booking.service_id,
        "notes": booking.notes or None,
        "created_at": ts,
        "updated_at": ts,
    }


def mirror_booking(sb: Client, booking: ServiceBooking) -> None:
    """Write the provider-facing copy of a new booking. Best-effort."""
    if not booking.provider_id:
        return
    try:
        sb.table("contracts").upsert(contract_row(booking), on_conflict="id").execute()
    except Exception as e:
        log.warning(f"Could not create contract for booking {booking.id}: {e}")


def mirror_status(sb: Client, booking_id: str, status: ContractStatus) -> None:
    try:
        sb.table("contracts").update({"status": status.value, "updated_at": now_iso()}).eq("id", booking_id).execute()
    except Exception as e:
        log.warning(f"Could not mirror status {status.value} to contract {booking_id}: {e}")


def on_day(contract: Contract, day: date) -> bool:
    return contract.scheduled_date.astimezone(config.TIMEZONE).date() == day


@router.get("/upcoming", response_model=List[Contract])
def upcoming_contracts(on: Optional[date] = None, user=Depends(get_user), sb: Client = Depends(get_supabase)):
    try:
        rows = (
            sb.table("contracts")
            .select("*")
            .eq("provider_id", user["id"])
            .in_("status", UPCOMING_CONTRACT_STATUSES)
            .execute()
        ).data or []
    except Exception as e:
        raise db_error("load contracts", e)

    contracts = []
    for row in rows:
        try:
            contracts.append(Contract.model_validate(row))
        except ValueError as e:
            log.warning(f"Skipping unreadable contract {row.get('id')}: {e}")
    contracts.sort(key=lambda c: c.scheduled_date)
    if on is not None:
        contracts = [c for c in contracts if on_day(c, on)]
    return contracts


@router.post("/{contract_id}/cancel", response_model=Contract)
def cancel_contract(contract_id: str, user=Depends(get_user), sb: Client = Depends(get_supabase)):
    try:
        row = fetch_one(sb, "contracts", id=contract_id)
    except Exception as e:
        raise db_error("load contract", e)
    if not row:
        raise HTTPException(status_code=404, detail="Contract not found")
    if row.get("provider_id") != user["id"]:
        raise HTTPException(status_code=403, detail="Only the service provider can cancel this appointment")
    if ContractStatus(row["status"]).is_terminal:
        raise HTTPException(status_code=409, detail=f"Appointment is already {row['status']}")

    ts = now_iso()
    try:
        resp = (
            sb.table("contracts")
            .update({"status": ContractStatus.cancelled.value, "updated_at": ts})
            .eq("id", contract_id)
            .execute()
        )
    except Exception as e:
        raise db_error("cancel appointment", e)
    log.info(f"Contract {contract_id} cancelled by provider {user['id']}")

    # same id as the booking it mirrors
    try:
        booking_resp = (
            sb.table("bookings")
            .update({
                "status": ContractStatus.cancelled.value,
                "cancelled_by": user["id"],
                "cancelled_at": ts,
                "updated_at": ts,
            })
            .eq("id", contract_id)
            .execute()
        )
        if booking_resp.data:
            notify_status_change(
                sb,
                ServiceBooking.model_validate(booking_resp.data[0]),
                ContractStatus.cancelled,
                message="Your service provider has cancelled this appointment.",
            )
    except Exception as e:
        log.warning(f"Could not mirror cancellation to booking {contract_id}: {e}")

    return resp.data[0] if resp.data else {**row, "status": ContractStatus.cancelled.value, "updated_at": ts}
