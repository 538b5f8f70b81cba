# taskflow/customers.py
import logging
import uuid
from collections import Counter
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from supabase import Client

from . import config
from .deps import db_error, fetch_one, get_supabase, get_user, now_iso
from .geocoding import geocode_address, haversine_km
from .models import BookingPrefill, CustomerInformation, CustomerInformationIn, CustomerStats
from .validation import find_locality

log = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/customers", tags=["customers"])

RECENT_LIMIT = 20
FREQUENT_ADDRESS_LIMIT = 5


# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────
def missing_fields(info: CustomerInformationIn, email: str) -> List[str]:
    errors = []
    if not info.full_name.strip():
        errors.append("Full name is required")
    if not info.phone_number.strip():
        errors.append("Phone number is required")
    if not info.service_address.strip():
        errors.append("Service address is required")
    if not email:
        errors.append("Email address is missing - please ensure you are logged in")
    return errors


async def save_customer_information(sb: Client, info: CustomerInformationIn, user: Dict[str, Any]) -> Dict[str, Any]:
    """
    Upsert the caller's record for this phone number. The whole record is
    rewritten each time (last write wins); only ``id`` and ``created_at``
    survive from the previous version.
    """
    lat, lng = info.latitude, info.longitude
    if lat is None or lng is None:
        coords = await geocode_address(info.service_address.strip())
        if coords:
            lat, lng = coords
    return await run_in_threadpool(_upsert_customer, sb, info, user, lat, lng)


def _upsert_customer(
    sb: Client,
    info: CustomerInformationIn,
    user: Dict[str, Any],
    lat: Optional[float],
    lng: Optional[float],
) -> Dict[str, Any]:
    phone = info.phone_number.strip()
    address = info.service_address.strip()
    existing = fetch_one(sb, "customer_information", user_uid=user["id"], phone_number=phone)
    ts = now_iso()
    row = {
        "id": existing["id"] if existing else str(uuid.uuid4()),
        "full_name": info.full_name.strip(),
        "email_address": user.get("auth_email") or user.get("email") or "",
        "phone_number": phone,
        "service_address": address,
        "locality": find_locality(address),
        "latitude": lat,
        "longitude": lng,
        "user_uid": user["id"],
        "created_by": user["id"],
        "platform": config.PLATFORM,
        "version": config.API_VERSION,
        "created_at": existing.get("created_at") if existing else ts,
        "updated_at": ts,
    }
    sb.table("customer_information").upsert(row, on_conflict="id").execute()
    log.info(f"Saved customer information {row['id']} for user {user['id']} (located={lat is not None})")
    return row


def _recent(sb: Client, user_id: str, limit: Optional[int] = RECENT_LIMIT) -> List[Dict[str, Any]]:
    q = (
        sb.table("customer_information")
        .select("*")
        .eq("user_uid", user_id)
        .order("created_at", desc=True)
    )
    if limit:
        q = q.limit(limit)
    return q.execute().data or []


def matches(row: Dict[str, Any], query: str) -> bool:
    query = query.lower()
    return (
        query in (row.get("full_name") or "").lower()
        or query in (row.get("phone_number") or "")
        or query in (row.get("service_address") or "").lower()
    )


# ──────────────────────────────────────────────────────────────────────────────
# Routes
# ──────────────────────────────────────────────────────────────────────────────
@router.post("", response_model=CustomerInformation, status_code=201)
async def create_or_update(payload: CustomerInformationIn, user=Depends(get_user), sb: Client = Depends(get_supabase)):
    email = user.get("auth_email") or user.get("email") or ""
    errors = missing_fields(payload, email)
    if errors:
        raise HTTPException(status_code=400, detail={"message": "Invalid customer information", "errors": errors})
    try:
        return await save_customer_information(sb, payload, user)
    except Exception as e:
        raise db_error("save customer information", e)


@router.get("", response_model=List[CustomerInformation])
def recent_customers(
    q: Optional[str] = None,
    limit: int = Query(RECENT_LIMIT, ge=1, le=100),
    user=Depends(get_user),
    sb: Client = Depends(get_supabase),
):
    try:
        rows = _recent(sb, user["id"], limit)
    except Exception as e:
        raise db_error("load recent customers", e)
    if q:
        rows = [r for r in rows if matches(r, q)]
    return rows


@router.get("/lookup", response_model=BookingPrefill)
def lookup_by_phone(phone: str = Query(..., min_length=1), user=Depends(get_user), sb: Client = Depends(get_supabase)):
    """Pre-fill the booking form from the caller's previous record for this phone."""
    email = user.get("auth_email") or user.get("email") or ""
    try:
        row = fetch_one(sb, "customer_information", user_uid=user["id"], phone_number=phone.strip())
    except Exception as e:
        raise db_error("fetch customer information", e)
    if not row:
        return BookingPrefill(found=False, customer_email=email, customer_phone=phone.strip())
    return BookingPrefill(
        found=True,
        customer_name=row.get("full_name") or "",
        customer_email=email,
        customer_phone=row.get("phone_number") or "",
        customer_address=row.get("service_address") or "",
        latitude=row.get("latitude"),
        longitude=row.get("longitude"),
    )


@router.get("/near", response_model=List[CustomerInformation])
def customers_near(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(10.0, gt=0),
    user=Depends(get_user),
    sb: Client = Depends(get_supabase),
):
    try:
        rows = _recent(sb, user["id"], limit=None)
    except Exception as e:
        raise db_error("load recent customers", e)
    return [
        r for r in rows
        if r.get("latitude") is not None and r.get("longitude") is not None
        and haversine_km((lat, lng), (r["latitude"], r["longitude"])) <= radius_km
    ]


@router.get("/addresses/frequent", response_model=List[str])
def frequent_addresses(user=Depends(get_user), sb: Client = Depends(get_supabase)):
    try:
        rows = _recent(sb, user["id"], limit=None)
    except Exception as e:
        raise db_error("load recent customers", e)
    counts = Counter(r["service_address"] for r in rows if r.get("service_address"))
    return [address for address, _ in counts.most_common(FREQUENT_ADDRESS_LIMIT)]


@router.get("/stats", response_model=CustomerStats)
def customer_stats(user=Depends(get_user), sb: Client = Depends(get_supabase)):
    try:
        rows = _recent(sb, user["id"], limit=None)
    except Exception as e:
        raise db_error("load recent customers", e)
    return CustomerStats(count=len(rows), unique_phones=len({r.get("phone_number") for r in rows}))
