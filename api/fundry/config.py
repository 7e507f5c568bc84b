
import os
from decimal import Decimal

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./fundry.db")
SECRET_KEY = os.getenv("SECRET_KEY", "devsecret")
SESSION_MAX_AGE_SECONDS = int(os.getenv("SESSION_MAX_AGE_SECONDS", str(7 * 24 * 3600)))
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "fundry_session")
ADMIN_ACCESS_TOKEN = os.getenv("ADMIN_ACCESS_TOKEN")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
WEB_BASE_URL = os.getenv("WEB_BASE_URL", "http://localhost:3000")

MINIO_ENDPOINT = os.getenv("MINIO_ENDPOINT", "minio:9000")
MINIO_ACCESS_KEY = os.getenv("MINIO_ACCESS_KEY", "minioadmin")
MINIO_SECRET_KEY = os.getenv("MINIO_SECRET_KEY", "minioadmin")
MINIO_BUCKET = os.getenv("MINIO_BUCKET", "fundry")
MINIO_SECURE = os.getenv("MINIO_SECURE", "false").lower() == "true"

REDIS_URL = os.getenv("REDIS_URL", "redis://redis:6379/0")
WORKER_QUEUE = os.getenv("WORKER_QUEUE", "fundry")
SWEEP_INTERVAL_SECONDS = int(os.getenv("FUNDRY_SWEEP_INTERVAL_SECONDS", "3600"))

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
STRIPE_API_BASE = os.getenv("STRIPE_API_BASE", "https://api.stripe.com/v1")
BUDPAY_SECRET_KEY = os.getenv("BUDPAY_SECRET_KEY")
BUDPAY_API_BASE = os.getenv("BUDPAY_API_BASE", "https://api.budpay.com/api/v2")

# Business rules. The funding cap is the one authoritative value for the platform.
MAX_FUNDING_GOAL = Decimal(os.getenv("FUNDRY_MAX_FUNDING_GOAL", "100000"))
DEFAULT_MINIMUM_INVESTMENT = Decimal(os.getenv("FUNDRY_DEFAULT_MINIMUM_INVESTMENT", "25"))
PLATFORM_FEE_RATE = Decimal(os.getenv("FUNDRY_PLATFORM_FEE_RATE", "0.025"))
DEFAULT_DISCOUNT_RATE = Decimal(os.getenv("FUNDRY_DEFAULT_DISCOUNT_RATE", "20"))
DEFAULT_VALUATION_CAP = Decimal(os.getenv("FUNDRY_DEFAULT_VALUATION_CAP", "1000000"))
PENDING_INVESTMENT_TTL_HOURS = int(os.getenv("FUNDRY_PENDING_INVESTMENT_TTL_HOURS", "168"))

FALLBACK_NGN_RATE = Decimal(os.getenv("FUNDRY_FALLBACK_NGN_RATE", "1560"))
RATE_CACHE_SECONDS = int(os.getenv("FUNDRY_RATE_CACHE_SECONDS", str(30 * 60)))
PRIMARY_RATE_URL = os.getenv("FUNDRY_PRIMARY_RATE_URL", "https://api.exchangerate-api.com/v4/latest/USD")
SECONDARY_RATE_URL = os.getenv("FUNDRY_SECONDARY_RATE_URL", "https://api.fixer.io/latest?base=USD&symbols=NGN")
INTERNAL_RATE_URL = os.getenv("FUNDRY_INTERNAL_RATE_URL")
