# taskflow/profiles.py
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from supabase import Client

from .deps import db_error, fetch_one, get_supabase, get_user, now_iso
from .models import ProfileUpdate, UserProfile

log = logging.getLogger("uvicorn.error")

router = APIRouter(tags=["profiles"])


def _profile_fields(user: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in user.items() if not k.startswith("auth_")}


def sync_with_auth(sb: Client, user: Dict[str, Any]) -> Dict[str, Any]:
    """Fill an empty email / full name from the auth identity and persist it."""
    profile = _profile_fields(user)
    changes = {}
    if not profile.get("email") and user.get("auth_email"):
        changes["email"] = user["auth_email"]
    if not profile.get("full_name") and user.get("auth_full_name"):
        changes["full_name"] = user["auth_full_name"]
    if not changes:
        return profile

    changes["updated_at"] = now_iso()
    sb.table("users").update(changes).eq("id", user["id"]).execute()
    log.info(f"Synced profile {user['id']} with auth identity: {sorted(changes)}")
    return {**profile, **changes}


@router.get("/profile", response_model=UserProfile)
def my_profile(user=Depends(get_user), sb: Client = Depends(get_supabase)):
    # get_user has already created a default profile if there was none
    try:
        return sync_with_auth(sb, user)
    except Exception as e:
        raise db_error("load profile", e)


@router.put("/profile", response_model=UserProfile)
def update_profile(payload: ProfileUpdate, user=Depends(get_user), sb: Client = Depends(get_supabase)):
    changes = payload.model_dump(exclude_none=True)
    if not changes:
        return _profile_fields(user)
    changes["updated_at"] = now_iso()
    try:
        resp = sb.table("users").update(changes).eq("id", user["id"]).execute()
    except Exception as e:
        raise db_error("update profile", e)
    return resp.data[0] if resp.data else {**_profile_fields(user), **changes}


@router.get("/profiles/{user_id}", response_model=UserProfile)
def public_profile(user_id: str, _user=Depends(get_user), sb: Client = Depends(get_supabase)):
    try:
        row = fetch_one(sb, "users", id=user_id)
    except Exception as e:
        raise db_error("load profile", e)
    if not row:
        raise HTTPException(status_code=404, detail="Profile not found")
    return row
