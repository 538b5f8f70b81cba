# taskflow/config.py
import os
from zoneinfo import ZoneInfo

# Optional settings. Required secrets (SUPABASE_*, STRIPE_*) are read where
# they are used so the app still imports without them.
TIMEZONE = ZoneInfo(os.environ.get("TASKFLOW_TIMEZONE", "Asia/Colombo"))
CURRENCY = os.environ.get("TASKFLOW_CURRENCY", "LKR")
SERVICE_IMAGES_BUCKET = os.environ.get("SERVICE_IMAGES_BUCKET", "services")

GEOCODER_URL = os.environ.get("GEOCODER_URL", "https://nominatim.openstreetmap.org")
GEOCODER_TIMEOUT = float(os.environ.get("GEOCODER_TIMEOUT", "5"))

SUCCESS_URL = os.environ.get("SUCCESS_URL", "taskflow://payment-success")
CANCEL_URL = os.environ.get("CANCEL_URL", "taskflow://payment-cancel")

CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

PLATFORM = "api"
API_VERSION = "1.0"
