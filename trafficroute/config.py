import os
from pathlib import Path
from dotenv import load_dotenv

# Always load .env from the package folder
load_dotenv(Path(__file__).resolve().parent / ".env")

OSRM_BASE_URL = os.getenv("OSRM_BASE_URL", "https://router.project-osrm.org").rstrip("/")
NOMINATIM_BASE_URL = os.getenv("NOMINATIM_BASE_URL", "https://nominatim.openstreetmap.org").rstrip("/")

# Unset means no client-side timeout on routing calls
_timeout = os.getenv("ROUTING_TIMEOUT_S", "").strip()
ROUTING_TIMEOUT_S = float(_timeout) if _timeout else None
ROUTING_EXCLUDE_PARAM = os.getenv("ROUTING_EXCLUDE_PARAM", "exclude_points")
ROUTING_USER_AGENT = os.getenv("ROUTING_USER_AGENT", "trafficroute/0.1")

INCIDENT_TTL_HOURS = float(os.getenv("INCIDENT_TTL_HOURS", "2"))
INCIDENT_TTL_MS = int(INCIDENT_TTL_HOURS * 3600 * 1000)
REROUTE_RADIUS_M = float(os.getenv("REROUTE_RADIUS_M", "500"))
SIM_TICK_HZ = float(os.getenv("SIM_TICK_HZ", "60"))

APP_HOST = os.getenv("APP_HOST", "127.0.0.1")
APP_PORT = int(os.getenv("APP_PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
    ).split(",")
    if origin.strip()
]
