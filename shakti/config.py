# config.py
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


# ------------------ Security ------------------
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60))

# ------------------ Database ------------------
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./navi_shakti.db")
SQL_ECHO = _env_bool("SQL_ECHO")

# ------------------ App ------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CLIENT_URL = os.getenv("CLIENT_URL", "")
# Mounts /notifications/test-push; keep off in production
ENABLE_TEST_ENDPOINTS = _env_bool("ENABLE_TEST_ENDPOINTS")

# ------------------ SMS (SMSPortal) ------------------
SMSP_CLIENT_ID = os.getenv("SMSP_CLIENT_ID")
SMSP_API_SECRET = os.getenv("SMSP_API_SECRET")
SMSP_API_URL = os.getenv("SMSP_API_URL", "https://rest.smsportal.com/bulkmessages")
SMS_DEFAULT_COUNTRY_CODE = os.getenv("SMS_DEFAULT_COUNTRY_CODE", "+91")
# When no credentials are set, log the SMS and report it as a simulated success
SMS_SIMULATE_WHEN_UNCONFIGURED = _env_bool("SMS_SIMULATE_WHEN_UNCONFIGURED", "true")

# ------------------ Email (SendGrid) ------------------
SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY")
SENDGRID_FROM_EMAIL = os.getenv("SENDGRID_FROM_EMAIL")
SENDGRID_SANDBOX = _env_bool("SENDGRID_SANDBOX")
EMAIL_SIMULATE_WHEN_UNCONFIGURED = _env_bool("EMAIL_SIMULATE_WHEN_UNCONFIGURED", "true")

# ------------------ Firebase ------------------
# Use either JSON path (local dev) or inline JSON string (deployment)
FIREBASE_CREDENTIALS_JSON = os.getenv("FIREBASE_CREDENTIALS_JSON")
# ...or the split service-account fields
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")
FIREBASE_CLIENT_EMAIL = os.getenv("FIREBASE_CLIENT_EMAIL")
FIREBASE_PRIVATE_KEY = os.getenv("FIREBASE_PRIVATE_KEY")

# ------------------ Fan-out ------------------
FCM_MULTICAST_LIMIT = int(os.getenv("FCM_MULTICAST_LIMIT", 500))
SMS_FALLBACK_CONCURRENCY = int(os.getenv("SMS_FALLBACK_CONCURRENCY", 4))
CHANNEL_TIMEOUT_SECONDS = float(os.getenv("CHANNEL_TIMEOUT_SECONDS", 10))
BROADCAST_TIMEOUT_SECONDS = float(os.getenv("BROADCAST_TIMEOUT_SECONDS", 30))
