# taskflow/geocoding.py
"""
Address <-> coordinate lookups against a Nominatim-compatible geocoder.

Lookups are best-effort: a timeout, an HTTP error or an empty result all come
back as ``None`` (or ``[]``) and are logged, never raised. Callers that accept
an ``httpx.AsyncClient`` use it as-is; otherwise a short-lived client is made.
"""
import logging
import math
from typing import Any, Dict, List, Optional, Tuple

import httpx
from fastapi import APIRouter, HTTPException, Query

from . import config
from .models import Place

log = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/geocode", tags=["geocoding"])

DEFAULT_LOCATION = (6.9271, 79.8612)  # Colombo
DEFAULT_LOCATION_NAME = "Colombo, Sri Lanka"
EARTH_RADIUS_KM = 6371.0088

Coordinate = Tuple[float, float]


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    lat1, lng1 = map(math.radians, a)
    lat2, lng2 = map(math.radians, b)
    h = math.sin((lat2 - lat1) / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin((lng2 - lng1) / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


async def _get(path: str, params: Dict[str, Any], client: Optional[httpx.AsyncClient]) -> Any:
    params = {"format": "jsonv2", **params}
    headers = {"User-Agent": "taskflow-api/1.0", "Accept-Language": "en"}
    if client is not None:
        resp = await client.get(f"{config.GEOCODER_URL}{path}", params=params, headers=headers)
    else:
        async with httpx.AsyncClient(timeout=config.GEOCODER_TIMEOUT) as c:
            resp = await c.get(f"{config.GEOCODER_URL}{path}", params=params, headers=headers)
    resp.raise_for_status()
    return resp.json()


def _to_place(item: Dict[str, Any]) -> Place:
    display = item.get("display_name") or ""
    return Place(
        name=item.get("name") or display.split(",")[0] or "Unknown",
        address=display or "Unknown Location",
        latitude=float(item["lat"]),
        longitude=float(item["lon"]),
    )


async def search_places(query: str, limit: int = 10, client: Optional[httpx.AsyncClient] = None) -> List[Place]:
    if not query.strip():
        return []
    try:
        items = await _get("/search", {"q": query, "countrycodes": "lk", "limit": limit}, client)
    except (httpx.HTTPError, ValueError) as e:
        log.warning(f"Place search failed for '{query}': {e}")
        return []
    return [_to_place(i) for i in items if "lat" in i and "lon" in i]


async def geocode_address(address: str, client: Optional[httpx.AsyncClient] = None) -> Optional[Coordinate]:
    places = await search_places(address, limit=1, client=client)
    if not places:
        log.info(f"No coordinates found for '{address}'")
        return None
    return places[0].latitude, places[0].longitude


async def reverse_geocode(lat: float, lng: float, client: Optional[httpx.AsyncClient] = None) -> Optional[str]:
    try:
        item = await _get("/reverse", {"lat": lat, "lon": lng}, client)
    except (httpx.HTTPError, ValueError) as e:
        log.warning(f"Reverse geocode failed for {lat},{lng}: {e}")
        return None
    if not isinstance(item, dict) or item.get("error"):
        return None
    return item.get("display_name")


# ──────────────────────────────────────────────────────────────────────────────
# Routes
# ──────────────────────────────────────────────────────────────────────────────
@router.get("/search", response_model=List[Place])
async def search(q: str = Query(..., min_length=1), limit: int = Query(10, ge=1, le=25)):
    return await search_places(q, limit=limit)


@router.get("/reverse")
async def reverse(lat: float = Query(..., ge=-90, le=90), lng: float = Query(..., ge=-180, le=180)):
    address = await reverse_geocode(lat, lng)
    if address is None:
        raise HTTPException(status_code=404, detail="Could not find an address for this location")
    return {"address": address, "latitude": lat, "longitude": lng}


@router.get("/default")
def default_location():
    lat, lng = DEFAULT_LOCATION
    return {"address": DEFAULT_LOCATION_NAME, "latitude": lat, "longitude": lng}
