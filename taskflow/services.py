# taskflow/services.py
import logging
import re
import uuid
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from supabase import Client

from . import config
from .deps import db_error, fetch_one, get_supabase, get_user, now_iso, require_tasker
from .models import Service, ServiceIn

log = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/services", tags=["services"])

MAX_IMAGE_BYTES = 5 * 1024 * 1024

# plain decimal rupees, at most two decimal places
PRICE_PATTERN = re.compile(r"[0-9]+(\.[0-9]{1,2})?")


def newest_first(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    # rows without created_at go last
    dated = sorted((r for r in rows if r.get("created_at")), key=lambda r: r["created_at"], reverse=True)
    return dated + [r for r in rows if not r.get("created_at")]


def _get_owned(sb: Client, service_id: str, user_id: str, action: str) -> Dict[str, Any]:
    try:
        svc = fetch_one(sb, "services", id=service_id)
    except Exception as e:
        raise db_error("load service", e)
    if not svc:
        raise HTTPException(status_code=404, detail="Service not found")
    if svc.get("user_id") != user_id:
        raise HTTPException(status_code=403, detail=f"You can only {action} your own services")
    return svc


@router.get("", response_model=List[Service])
def list_services(sb: Client = Depends(get_supabase)):
    try:
        rows = sb.table("services").select("*").eq("is_active", True).execute().data or []
    except Exception as e:
        raise db_error("load services", e)
    return newest_first(rows)


@router.get("/mine", response_model=List[Service])
def my_services(user=Depends(get_user), sb: Client = Depends(get_supabase)):
    try:
        rows = (
            sb.table("services")
            .select("*")
            .eq("user_id", user["id"])
            .eq("is_active", True)
            .execute()
        ).data or []
    except Exception as e:
        raise db_error("load your services", e)
    return newest_first(rows)


@router.get("/{service_id}", response_model=Service)
def get_service(service_id: str, sb: Client = Depends(get_supabase)):
    try:
        svc = fetch_one(sb, "services", id=service_id)
    except Exception as e:
        raise db_error("load service", e)
    if not svc:
        raise HTTPException(status_code=404, detail="Service not found")
    return svc


@router.post("", response_model=Service, status_code=201)
def create_service(payload: ServiceIn, user=Depends(require_tasker), sb: Client = Depends(get_supabase)):
    name = payload.name.strip()
    description = payload.description.strip()
    price = payload.price.strip()
    estimated_time = payload.estimated_time.strip()

    if not (name and description and price and estimated_time):
        raise HTTPException(status_code=400, detail="All fields are required.")
    if not PRICE_PATTERN.fullmatch(price):
        raise HTTPException(status_code=400, detail="Please enter a valid price.")
    price_value = float(price)

    ts = now_iso()
    row = {
        "id": str(uuid.uuid4()),
        "name": name,
        "description": description,
        "price": price_value,
        "price_string": price,
        "estimated_time": estimated_time,
        "user_id": user["id"],
        "image_url": "",
        "is_active": True,
        "created_at": ts,
        "updated_at": ts,
    }
    try:
        created = sb.table("services").insert(row).execute()
    except Exception as e:
        raise db_error("save service", e)
    log.info(f"Service {row['id']} '{name}' created by {user['id']}")
    return created.data[0] if created.data else row


@router.post("/{service_id}/image", response_model=Service)
def upload_image(
    service_id: str,
    file: UploadFile = File(...),
    user=Depends(get_user),
    sb: Client = Depends(get_supabase),
):
    svc = _get_owned(sb, service_id, user["id"], "update")
    if file.content_type not in ("image/jpeg", "image/jpg"):
        raise HTTPException(status_code=400, detail="Failed to process image data")
    data = file.file.read()
    if not data or len(data) > MAX_IMAGE_BYTES:
        raise HTTPException(status_code=400, detail="Failed to process image data")

    path = f"services/{user['id']}/{uuid.uuid4()}.jpg"
    bucket = sb.storage.from_(config.SERVICE_IMAGES_BUCKET)
    try:
        bucket.upload(path, data, {"content-type": "image/jpeg"})
        image_url = bucket.get_public_url(path)
    except Exception as e:
        log.error(f"Image upload failed for service {service_id}: {e}")
        raise HTTPException(status_code=502, detail=f"Image upload failed: {e}")
    if not image_url:
        raise HTTPException(status_code=502, detail="Invalid image URL.")

    try:
        updated = (
            sb.table("services")
            .update({"image_url": image_url, "updated_at": now_iso()})
            .eq("id", service_id)
            .execute()
        )
    except Exception as e:
        raise db_error("save service", e)
    return updated.data[0] if updated.data else {**svc, "image_url": image_url}


@router.delete("/{service_id}")
def delete_service(service_id: str, user=Depends(get_user), sb: Client = Depends(get_supabase)):
    """Soft delete: the row stays, it just stops being listed."""
    _get_owned(sb, service_id, user["id"], "delete")
    try:
        sb.table("services").update({"is_active": False, "updated_at": now_iso()}).eq("id", service_id).execute()
    except Exception as e:
        raise db_error("delete service", e)
    log.info(f"Service {service_id} deactivated by {user['id']}")
    return {"deleted": True}
