import os


# ====== Remote API ======
API_BASE_URL = os.getenv("CONSOLE_AUTH_API_BASE_URL", "http://localhost:8080")
REQUEST_TIMEOUT = float(os.getenv("CONSOLE_AUTH_REQUEST_TIMEOUT", "10"))


# ====== Durable client storage ======
TOKEN_DB_URL = os.getenv(
    "CONSOLE_AUTH_TOKEN_DB_URL",
    "sqlite:///" + os.path.join(os.path.expanduser("~"), ".console_auth.db"),
)
TOKEN_STORAGE_KEY = os.getenv("CONSOLE_AUTH_TOKEN_KEY", "token")


# ====== Session guard ======
EXPIRY_CHECK_INTERVAL = float(os.getenv("CONSOLE_AUTH_EXPIRY_CHECK_INTERVAL", "60"))


# ====== Face capture (seconds) ======
SAMPLE_INTERVAL = float(os.getenv("CONSOLE_AUTH_SAMPLE_INTERVAL", "0.3"))
CAMERA_STARTUP_DELAY = float(os.getenv("CONSOLE_AUTH_CAMERA_STARTUP_DELAY", "1.0"))
REARM_DELAY = float(os.getenv("CONSOLE_AUTH_REARM_DELAY", "1.0"))
MIN_DETECTION_CONFIDENCE = float(os.getenv("CONSOLE_AUTH_MIN_DETECTION_CONFIDENCE", "0.5"))
CAMERA_INDEX = int(os.getenv("CONSOLE_AUTH_CAMERA_INDEX", "0"))


# Snackbar-style notices auto-hide after this many seconds
NOTIFICATION_TTL = float(os.getenv("CONSOLE_AUTH_NOTIFICATION_TTL", "6"))


# ====== Views ======
LOGIN_PATH = "/login"
HOME_PATH = "/home"


# CORS (console and API on same origin → keep strict; otherwise, add your domain)
CORS_ALLOW_ORIGINS = [o for o in os.getenv("CONSOLE_AUTH_CORS_ALLOW_ORIGINS", "").split(",") if o]
