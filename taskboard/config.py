import os

SECRET_KEY = os.environ.get("SECRET_KEY", "change-me-in-production")
ALGORITHM = os.environ.get("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = float(os.environ.get("ACCESS_TOKEN_EXPIRE_MINUTES", 60))

# Session cookie; only flagged Secure when served over https
COOKIE_NAME = os.environ.get("COOKIE_NAME", "token")
COOKIE_SECURE = os.environ.get("COOKIE_SECURE", "false").lower() == "true"

# Default to local SQLite for dev/tests; override via env in Docker/Prod
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./taskboard.db")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.environ.get("LOG_FORMAT", "json").lower()

# Event stream tuning
SSE_HEARTBEAT_SECONDS = float(os.environ.get("SSE_HEARTBEAT_SECONDS", 15))
SSE_QUEUE_SIZE = int(os.environ.get("SSE_QUEUE_SIZE", 100))
