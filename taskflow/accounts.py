# taskflow/accounts.py
import logging
from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from supabase import Client

from .deps import db_error, default_profile_row, fetch_one, get_supabase, get_user, security, user_role
from .models import AuthOut, LoginRequest, SignupRequest, UserProfile, UserRole
from .validation import validate_login, validate_signup

log = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/auth", tags=["auth"])

# (substring of the auth server's message, what the app shows)
_FRIENDLY = [
    ("already registered", "This email is already registered. Please try logging in."),
    ("already been registered", "This email is already registered. Please try logging in."),
    ("invalid login credentials", "Incorrect email or password. Please try again."),
    ("email not confirmed", "Please confirm your email address before logging in."),
    ("password should be", "Password is too weak. Please choose a stronger password."),
    ("weak password", "Password is too weak. Please choose a stronger password."),
    ("unable to validate email", "Please enter a valid email address."),
    ("invalid email", "Please enter a valid email address."),
    ("user not found", "No account found with this email address."),
    ("banned", "This account has been disabled. Please contact support."),
    ("rate limit", "Too many attempts. Please try again later."),
    ("too many", "Too many attempts. Please try again later."),
]


def friendly_error_message(e: Exception) -> str:
    if isinstance(e, httpx.TransportError):
        return "Network error. Please check your connection and try again."
    text = str(e)
    lowered = text.lower()
    for needle, message in _FRIENDLY:
        if needle in lowered:
            return message
    return text or "Something went wrong. Please try again."


def _session_tokens(resp: Any) -> Dict[str, Optional[str]]:
    session = getattr(resp, "session", None)
    return {
        "access_token": getattr(session, "access_token", None),
        "refresh_token": getattr(session, "refresh_token", None),
    }


@router.post("/signup", response_model=AuthOut, status_code=201)
def signup(payload: SignupRequest, sb: Client = Depends(get_supabase)):
    problem = validate_signup(payload.email, payload.password)
    if problem:
        raise HTTPException(status_code=400, detail=problem)

    email = payload.email.strip().lower()
    full_name = payload.full_name.strip()
    try:
        resp = sb.auth.sign_up({
            "email": email,
            "password": payload.password,
            "options": {"data": {"full_name": full_name, "role": payload.role.value}},
        })
    except Exception as e:
        log.error(f"Sign up failed for {email}: {e}")
        raise HTTPException(status_code=400, detail=friendly_error_message(e))

    if not resp or not resp.user:
        raise HTTPException(status_code=500, detail="Failed to create user account")
    uid = resp.user.id

    row = default_profile_row(uid, email, full_name, payload.role)
    try:
        saved = sb.table("users").upsert(row, on_conflict="id").execute()
    except Exception as e:
        log.error(f"Saving profile for {uid} failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to save user data")
    log.info(f"Sign up successful for {email} as {payload.role.value}")

    return AuthOut(
        **_session_tokens(resp),
        user_id=uid,
        role=payload.role,
        profile=UserProfile.model_validate(saved.data[0] if saved.data else row),
    )


@router.post("/login", response_model=AuthOut)
def login(payload: LoginRequest, sb: Client = Depends(get_supabase)):
    problem = validate_login(payload.email, payload.password)
    if problem:
        raise HTTPException(status_code=400, detail=problem)

    email = payload.email.strip().lower()
    try:
        resp = sb.auth.sign_in_with_password({"email": email, "password": payload.password})
    except Exception as e:
        log.warning(f"Login failed for {email}: {e}")
        raise HTTPException(status_code=401, detail=friendly_error_message(e))
    if not resp or not resp.user:
        raise HTTPException(status_code=401, detail="Incorrect email or password. Please try again.")
    uid = resp.user.id

    try:
        row = fetch_one(sb, "users", id=uid)
        if row is None:
            log.info(f"No profile for {uid} at login, creating default client profile")
            row = default_profile_row(uid, email, "", UserRole.client)
            sb.table("users").insert(row).execute()
    except Exception as e:
        raise db_error("fetch user data", e)

    role = user_role(row)
    if row.get("role") != role.value:
        log.warning(f"Invalid role {row.get('role')!r} for {uid}, defaulting to client")
    log.info(f"Login successful for {email} ({role.value})")
    return AuthOut(**_session_tokens(resp), user_id=uid, role=role, profile=UserProfile.model_validate({**row, "role": role}))


@router.post("/logout")
def logout(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    sb: Client = Depends(get_supabase),
):
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    try:
        sb.auth.admin.sign_out(credentials.credentials)
    except Exception as e:
        log.error(f"Sign out failed: {e}")
        raise HTTPException(status_code=400, detail=friendly_error_message(e))
    return {"ok": True}


@router.get("/me", response_model=UserProfile)
def me(user=Depends(get_user)):
    return {**user, "role": user_role(user)}
