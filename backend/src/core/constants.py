"""Application constants and configuration values."""

from core.config import FRONTEND_URL

# Database field lengths
MAX_STRING_LENGTH = 255
MAX_TENANT_ID_LENGTH = 64
MAX_SPECIALTY_LENGTH = 100

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for development and production
_CORS_ORIGINS_RAW = [
    "http://localhost:5173",      # React dev server (Vite)
    FRONTEND_URL,
]

# Filter out None values and empty strings to avoid CORS errors
CORS_ORIGINS = [origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()]

# Template classification
TEMPLATE_TYPES = [
    "consultation",
    "follow_up",
    "emergency",
    "procedure",
    "discharge",
    "admission",
    "progress_note",
    "operative_note",
]

# Recommended specialty vocabulary. Specialty is an open string; these are the
# values the UI offers by default.
RECOMMENDED_SPECIALTIES = [
    "general_medicine",
    "cardiology",
    "neurology",
    "orthopedics",
    "pediatrics",
    "obstetrics_gynecology",
    "dermatology",
    "psychiatry",
    "oncology",
    "emergency_medicine",
    "general_surgery",
    "ophthalmology",
    "ent",
    "urology",
]

# Tenant whose active templates are copied into new tenants
DEFAULT_TEMPLATE_TENANT_ID = "default"

# Template listing pagination
TEMPLATE_LIST_DEFAULT_LIMIT = 50
TEMPLATE_LIST_MAX_LIMIT = 200

# Template recommendations
TEMPLATE_RECOMMENDATION_DEFAULT_LIMIT = 10
