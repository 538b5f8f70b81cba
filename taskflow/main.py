# taskflow/main.py
import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import config
from .accounts import router as accounts_router
from .bookings import router as bookings_router
from .contracts import router as contracts_router
from .customers import router as customers_router
from .geocoding import router as geocoding_router
from .health import router as health_router
from .notifications import router as notifications_router
from .payments import router as payments_router
from .profiles import router as profiles_router
from .services import router as services_router

log = logging.getLogger("uvicorn.error")

app = FastAPI(
    title="TaskFlow API",
    version="1.0.0",
    docs_url="/docs",
    redoc_url=None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RuntimeError)
async def missing_config(request: Request, exc: RuntimeError):
    # raised by lazily-read settings (SUPABASE_URL, SUPABASE_DB_URL, ...)
    log.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=500, content={"detail": str(exc)})


# routers
app.include_router(health_router)
app.include_router(accounts_router)
app.include_router(profiles_router)
app.include_router(services_router)
app.include_router(bookings_router)
app.include_router(payments_router)
app.include_router(customers_router)
app.include_router(contracts_router)
app.include_router(notifications_router)
app.include_router(geocoding_router)


# ──────────────────────────────────────────────────────────────────────────────
# Local dev entrypoint
# ──────────────────────────────────────────────────────────────────────────────
if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=config.LOG_LEVEL)
    uvicorn.run(
        "taskflow.main:app",
        host="0.0.0.0",
        port=int(os.environ.get("PORT", "8000")),
        reload=True,
    )
