"""
Application configuration read from environment variables.

All settings are module-level constants resolved once at import time.
DATABASE_URL lives in app.database next to the engine it configures.
"""

import os

# ──────────────────────────────────────────────────────────────
# Session tokens
# ──────────────────────────────────────────────────────────────
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALGORITHM = "HS256"
JWT_EXPIRES_DAYS = int(os.getenv("JWT_EXPIRES_DAYS", "7"))
SESSION_COOKIE_NAME = "token"
COOKIE_SECURE = os.getenv("ENVIRONMENT", "development") == "production"

# ──────────────────────────────────────────────────────────────
# Transactional email
# ──────────────────────────────────────────────────────────────
SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASS = os.getenv("SMTP_PASS")
SMTP_FROM = os.getenv("SMTP_FROM", SMTP_USER)

APP_NAME = os.getenv("APP_NAME", "Course Portal")
APP_URL = os.getenv("APP_URL", os.getenv("NEXT_PUBLIC_APP_URL", "http://localhost:3000"))

# ──────────────────────────────────────────────────────────────
# Uploaded files
# ──────────────────────────────────────────────────────────────
UPLOADS_DIR = os.getenv("UPLOADS_DIR", os.path.join(os.getcwd(), "uploads"))
UPLOADS_URL_PREFIX = "/api/uploads/"

# ──────────────────────────────────────────────────────────────
# Rate limiting (token bucket per client IP, capacity 0 disables)
# ──────────────────────────────────────────────────────────────
RATE_LIMIT_CAPACITY = int(os.getenv("RATE_LIMIT_CAPACITY", "60"))
RATE_LIMIT_REFILL_PER_SEC = float(os.getenv("RATE_LIMIT_REFILL_PER_SEC", "1.0"))

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# Peers allowed to set X-Forwarded-For (e.g. the load balancer). The header
# is ignored from anyone else.
TRUSTED_PROXIES = [p.strip() for p in os.getenv("TRUSTED_PROXIES", "").split(",") if p.strip()]
