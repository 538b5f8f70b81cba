# taskflow/auth.py
import os
import time
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import requests
from fastapi import HTTPException
from jose import jwt, JWTError

_cache: Dict[str, Any] = {"jwks": None, "fetched_at": 0}
JWKS_TTL = 600


def _auth_base_url() -> str:
    """https://<ref>.supabase.co/auth/v1, from SUPABASE_PROJECT_REF or SUPABASE_URL."""
    ref = os.getenv("SUPABASE_PROJECT_REF")
    if ref:
        return f"https://{ref}.supabase.co/auth/v1"
    url = os.getenv("SUPABASE_URL")
    if not url:
        raise RuntimeError("Missing SUPABASE_PROJECT_REF or SUPABASE_URL")
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}/auth/v1"


def _anon_headers() -> Dict[str, str]:
    anon = os.getenv("SUPABASE_ANON_KEY", "")
    if not anon:
        return {}
    return {"apikey": anon, "Authorization": f"Bearer {anon}"}


def _get_jwks() -> Dict[str, Any]:
    now = time.time()
    if not _cache["jwks"] or now - _cache["fetched_at"] > JWKS_TTL:
        resp = requests.get(f"{_auth_base_url()}/.well-known/jwks.json", headers=_anon_headers(), timeout=10)
        resp.raise_for_status()
        _cache["jwks"] = resp.json()
        _cache["fetched_at"] = now
    return _cache["jwks"]


def _fetch_claims_from_supabase(token: str) -> Dict[str, Any]:
    """Fallback: ask the auth server who this token belongs to."""
    headers = {
        "Authorization": f"Bearer {token}",
        "apikey": os.getenv("SUPABASE_ANON_KEY", ""),
    }
    r = requests.get(f"{_auth_base_url()}/user", headers=headers, timeout=10)
    if r.status_code != 200:
        raise HTTPException(status_code=401, detail="Could not verify token")
    data = r.json() or {}
    user = data.get("user") or data
    if not user.get("id"):
        raise HTTPException(status_code=401, detail="User id not found for token")
    return {
        "sub": user["id"],
        "email": user.get("email"),
        "user_metadata": user.get("user_metadata") or {},
    }


def _decode(token: str, key: Any, alg: str) -> Dict[str, Any]:
    try:
        claims = jwt.decode(
            token,
            key,
            algorithms=[alg],
            options={"verify_aud": False},
            issuer=_auth_base_url(),
        )
    except JWTError as e:
        raise HTTPException(status_code=401, detail=f"Invalid token ({alg}): {e}")
    if not claims.get("sub"):
        raise HTTPException(status_code=401, detail="Token missing subject (sub)")
    return claims


def verify_token(token: str) -> Dict[str, Any]:
    """
    Returns the claims of a Supabase access token.

      - HS256 -> verified with SUPABASE_JWT_SECRET
      - RS256 -> verified against the project's JWKS (cached)
      - anything else, or no secret configured -> /auth/v1/user
    """
    try:
        header = jwt.get_unverified_header(token)
    except JWTError:
        return _fetch_claims_from_supabase(token)
    alg = (header.get("alg") or "").upper()

    if alg == "HS256":
        secret = os.getenv("SUPABASE_JWT_SECRET", "")
        if not secret:
            return _fetch_claims_from_supabase(token)
        return _decode(token, secret, "HS256")

    if alg == "RS256":
        kid = header.get("kid")
        key: Optional[Dict[str, Any]] = next(
            (k for k in _get_jwks().get("keys", []) if k.get("kid") == kid), None
        )
        if not key:
            raise HTTPException(status_code=401, detail="Signing key not found")
        return _decode(token, key, "RS256")

    return _fetch_claims_from_supabase(token)
