import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./proposals.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Public base URL used to build recipient signing links
APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:3000")

# Shared secret for the scheduled sweep trigger (Authorization: Bearer <secret>)
CRON_SECRET = os.getenv("CRON_SECRET")

# HMAC key for payment processor webhooks
PAYMENT_WEBHOOK_SECRET = os.getenv("PAYMENT_WEBHOOK_SECRET")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "OpenProposal <noreply@openproposal.io>")
EMAIL_SEND_TIMEOUT_SECONDS = float(os.getenv("EMAIL_SEND_TIMEOUT_SECONDS", "10"))

# Verification anchoring service
ANCHOR_SERVICE_URL = os.getenv("ANCHOR_SERVICE_URL")
ANCHOR_API_KEY = os.getenv("ANCHOR_API_KEY")
ANCHOR_TIMEOUT_SECONDS = float(os.getenv("ANCHOR_TIMEOUT_SECONDS", "30"))
ANCHOR_EXPLORER_URL = os.getenv("ANCHOR_EXPLORER_URL", "https://basescan.org")
ANCHOR_CHAIN_ID = int(os.getenv("ANCHOR_CHAIN_ID", "8453"))
ANCHOR_CHAIN_NAME = os.getenv("ANCHOR_CHAIN_NAME", "Base")

# Reminder milestones (days after send) used when a document has no reminderDays setting
DEFAULT_REMINDER_DAYS = [
    int(day) for day in os.getenv("DEFAULT_REMINDER_DAYS", "1,3,7").split(",") if day.strip()
]
