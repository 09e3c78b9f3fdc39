import os

db_url = os.environ.get("DB_URL", "sqlite://:memory:")
users_ms_url = os.environ.get("USERS_MS_URL", "http://localhost:8000")
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

# Grants super_admin to this user id on startup if nobody holds it yet
bootstrap_super_admin_id = os.environ.get("BOOTSTRAP_SUPER_ADMIN_ID") or None

MIN_BOOKING_HOURS = int(os.environ.get("MIN_BOOKING_HOURS", "4"))
SLOTS_TTL = int(os.environ.get("SLOTS_TTL", "60"))

TORTOISE_MODULES = {"models": ["banquet_bookings.models"]}
