# taskflow/health.py
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from .db import get_session

log = logging.getLogger("uvicorn.error")

router = APIRouter(tags=["health"])


@router.get("/")
def read_root():
    return {"ok": True, "service": "taskflow-api"}


@router.get("/health")
def health():
    return {"ok": True}


@router.get("/health/db")
async def health_db(db: AsyncSession = Depends(get_session)):
    try:
        result = await db.execute(text("select 1"))
        return {"ok": True, "db": result.scalar_one()}
    except Exception as e:
        log.error(f"DB check failed: {e}")
        raise HTTPException(status_code=503, detail=f"DB check failed: {e}")
