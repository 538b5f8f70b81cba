# taskflow/payments.py
"""
Stripe Checkout for bookings.

The client pays the booking's ``total_amount`` through a hosted Checkout
page. The session id is stored on the booking, and the webhook flips
``payment_status`` to ``paid`` once Stripe reports the session completed.
"""
import logging
import os
from typing import Any

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from supabase import Client

from . import config
from .deps import db_error, fetch_one, get_supabase, get_user, now_iso
from .models import BookingStatus, CheckoutOut, ServiceBooking

log = logging.getLogger("uvicorn.error")

router = APIRouter(tags=["payments"])

PAID = "paid"


def _stripe_key() -> str:
    key = os.environ.get("STRIPE_SECRET_KEY")
    if not key:
        log.error("Stripe secret key missing (STRIPE_SECRET_KEY)")
        raise HTTPException(status_code=500, detail="Stripe secret key missing")
    return key


def minor_units(amount: float) -> int:
    return int(round(amount * 100))


@router.post("/bookings/{booking_id}/checkout", response_model=CheckoutOut)
def create_checkout(booking_id: str, user=Depends(get_user), sb: Client = Depends(get_supabase)):
    try:
        row = fetch_one(sb, "bookings", id=booking_id)
    except Exception as e:
        raise db_error("load booking", e)
    if not row or row.get("created_by") != user["id"]:
        raise HTTPException(status_code=404, detail="Booking not found")
    booking = ServiceBooking.model_validate(row)
    if booking.payment_status == PAID:
        raise HTTPException(status_code=409, detail="Booking is already paid")
    if booking.status is BookingStatus.cancelled:
        raise HTTPException(status_code=409, detail="Booking is already cancelled")

    stripe.api_key = _stripe_key()
    currency = booking.currency.lower()
    try:
        sess = stripe.checkout.Session.create(
            mode="payment",
            customer_email=booking.customer_email or None,
            line_items=[{
                "price_data": {
                    "currency": currency,
                    "product_data": {"name": booking.service_name},
                    "unit_amount": minor_units(booking.total_amount),
                },
                "quantity": 1,
            }],
            success_url=f"{config.SUCCESS_URL}?booking_id={booking.id}",
            cancel_url=f"{config.CANCEL_URL}?booking_id={booking.id}",
            metadata={"booking_id": booking.id, "user_id": user["id"]},
        )
    except Exception as e:
        log.error(f"Stripe Checkout create failed for booking {booking.id}: {e}")
        raise HTTPException(status_code=400, detail="Failed to create checkout session")

    try:
        sb.table("bookings").update({"checkout_session_id": sess.id, "updated_at": now_iso()}).eq("id", booking.id).execute()
    except Exception as e:
        raise db_error("save checkout session", e)
    log.info(f"Created checkout session {sess.id} for booking {booking.id} ({booking.formatted_price})")
    return CheckoutOut(checkout_url=sess.url, session_id=sess.id)


def mark_paid(sb: Client, sess: Any) -> None:
    """Flip the booking behind a completed Checkout session to paid."""
    changes = {"payment_status": PAID, "updated_at": now_iso()}
    try:
        resp = sb.table("bookings").update(changes).eq("checkout_session_id", sess["id"]).execute()
        booking_id = (sess.get("metadata") or {}).get("booking_id")
        if not resp.data and booking_id:
            resp = sb.table("bookings").update(changes).eq("id", booking_id).execute()
    except Exception as e:
        raise db_error("record payment", e)
    if resp.data:
        log.info(f"Booking {resp.data[0]['id']} paid via session {sess['id']}")
    else:
        log.warning(f"No booking found for checkout session {sess['id']}")


@router.post("/stripe/webhook")
async def stripe_webhook(request: Request, sb: Client = Depends(get_supabase)):
    secret = os.environ.get("STRIPE_WEBHOOK_SECRET")
    if not secret:
        log.error("Stripe webhook secret missing (STRIPE_WEBHOOK_SECRET)")
        raise HTTPException(status_code=500, detail="Webhook secret not configured")

    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    try:
        event = stripe.Webhook.construct_event(payload=payload, sig_header=sig_header, secret=secret)
    except Exception as e:
        log.error(f"Stripe webhook verify FAILED: {e}; sig_header_present={bool(sig_header)}")
        raise HTTPException(status_code=400, detail="signature verification failed")

    etype = event["type"]
    log.info(f"Stripe webhook received: {etype}")

    if etype == "checkout.session.completed":
        await run_in_threadpool(mark_paid, sb, event["data"]["object"])

    return {"ok": True}
