# taskflow/deps.py
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from postgrest.exceptions import APIError
from supabase import create_client, Client

from .auth import verify_token
from .models import UserRole

log = logging.getLogger("uvicorn.error")

security = HTTPBearer(auto_error=False)


# ──────────────────────────────────────────────────────────────────────────────
# Supabase client (service role so it bypasses RLS on the server)
#   SUPABASE_URL=https://YOUR-PROJECT-REF.supabase.co
#   SUPABASE_SERVICE_ROLE=eyJhbGciOiJI...
# ──────────────────────────────────────────────────────────────────────────────
def get_supabase() -> Client:
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_SERVICE_ROLE")
    if not url or not key:
        raise RuntimeError("Missing SUPABASE_URL or SUPABASE_SERVICE_ROLE")
    return create_client(url, key)


# ──────────────────────────────────────────────────────────────────────────────
# Helpers shared by the routers
# ──────────────────────────────────────────────────────────────────────────────
def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    return now_utc().isoformat()


def db_error(action: str, e: Exception) -> HTTPException:
    message = e.message if isinstance(e, APIError) else str(e)
    log.error(f"Failed to {action}: {message}")
    return HTTPException(status_code=500, detail=f"Failed to {action}: {message}")


def fetch_one(sb: Client, table: str, **filters: Any) -> Optional[Dict[str, Any]]:
    q = sb.table(table).select("*")
    for col, val in filters.items():
        q = q.eq(col, val)
    rows: List[Dict[str, Any]] = q.limit(1).execute().data or []
    return rows[0] if rows else None


def default_profile_row(uid: str, email: str, full_name: str, role: UserRole) -> Dict[str, Any]:
    ts = now_iso()
    return {
        "id": uid,
        "email": email,
        "full_name": full_name,
        "role": role.value,
        "profession": role.display_name,
        "location": "Location not set",
        "rating": 5.0,
        "total_jobs": 0,
        "is_verified": False,
        "languages": ["English"],
        "joined_date": ts,
        "created_at": ts,
        "updated_at": ts,
    }


# ──────────────────────────────────────────────────────────────────────────────
# Current user: verified token -> public.users row (created on first sight)
# ──────────────────────────────────────────────────────────────────────────────
def get_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    sb: Client = Depends(get_supabase),
) -> Dict[str, Any]:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Missing bearer token")

    claims = verify_token(credentials.credentials)
    uid = claims["sub"]
    email = claims.get("email") or ""
    full_name = (claims.get("user_metadata") or {}).get("full_name") or ""

    try:
        row = fetch_one(sb, "users", id=uid)
        if row is None:
            log.info(f"No profile for {uid}, creating default client profile")
            created = sb.table("users").insert(default_profile_row(uid, email, full_name, UserRole.client)).execute()
            row = created.data[0]
    except Exception as e:
        raise db_error("load user", e)

    # identity from the token wins over whatever is stored
    return {**row, "id": uid, "auth_email": email, "auth_full_name": full_name}


def user_role(user: Dict[str, Any]) -> UserRole:
    try:
        return UserRole(user.get("role"))
    except ValueError:
        return UserRole.client


def require_tasker(user: Dict[str, Any] = Depends(get_user)) -> Dict[str, Any]:
    if user_role(user) is not UserRole.tasker:
        raise HTTPException(status_code=403, detail="Only service providers can do this")
    return user
