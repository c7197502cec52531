import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./fieldservice.db")
REDIS_URL = os.getenv("REDIS_URL")

# Firebase Configuration
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")

# Cloudflare R2 Configuration
R2_ACCOUNT_ID = os.getenv("R2_ACCOUNT_ID")
R2_ACCESS_KEY_ID = os.getenv("R2_ACCESS_KEY_ID")
R2_SECRET_ACCESS_KEY = os.getenv("R2_SECRET_ACCESS_KEY")
R2_BUCKET_NAME = os.getenv("R2_BUCKET_NAME", "fieldservice")
PRESIGNED_URL_EXPIRATION = int(os.getenv("PRESIGNED_URL_EXPIRATION", "3600"))

# Business calendar
BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "Asia/Manila")
SLOT_CODES = ("09:00", "10:00", "11:00", "13:00", "14:00", "15:00", "16:00")

# Booking rules
SLOT_HOLD_TTL_SECONDS = int(os.getenv("SLOT_HOLD_TTL_SECONDS", "300"))  # 5 minutes
OFFICE_SLOT_CAPACITY = int(os.getenv("OFFICE_SLOT_CAPACITY", "3"))
ONSITE_SLOT_CAPACITY = int(os.getenv("ONSITE_SLOT_CAPACITY", "3"))
DEFAULT_MAX_RESCHEDULES = int(os.getenv("DEFAULT_MAX_RESCHEDULES", "3"))

# Design package revisions (initial upload + this many revisions)
MAX_DESIGN_REVISIONS = int(os.getenv("MAX_DESIGN_REVISIONS", "3"))

# Payments
RECEIPT_PREFIX = os.getenv("RECEIPT_PREFIX", "RMV")
PERCENTAGE_TOLERANCE = float(os.getenv("PERCENTAGE_TOLERANCE", "0.01"))

# On-site visit fee / routing (OpenRouteService)
ORS_API_KEY = os.getenv("ORS_API_KEY")
ORS_DIRECTIONS_URL = os.getenv(
    "ORS_DIRECTIONS_URL", "https://api.openrouteservice.org/v2/directions/driving-car"
)
SHOP_LATITUDE = float(os.getenv("SHOP_LATITUDE", "14.6995125"))
SHOP_LONGITUDE = float(os.getenv("SHOP_LONGITUDE", "121.053703125"))
VISIT_BASE_FEE = float(os.getenv("VISIT_BASE_FEE", "350"))
VISIT_BASE_COVERED_KM = float(os.getenv("VISIT_BASE_COVERED_KM", "10"))
VISIT_PER_KM_RATE = float(os.getenv("VISIT_PER_KM_RATE", "60"))
VISIT_MAX_DISTANCE_KM = float(os.getenv("VISIT_MAX_DISTANCE_KM", "100"))
ROUTE_CACHE_TTL_SECONDS = int(os.getenv("ROUTE_CACHE_TTL_SECONDS", str(24 * 60 * 60)))

# Frontend base URL for notification deep links
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
