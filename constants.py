import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8080))
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", f"http://localhost:{PORT}").rstrip("/")

ROOM_TTL_MINUTES = int(os.getenv("ROOM_TTL_MINUTES", 120))
# "memory" keeps rooms in this process, "redis" stores them with a native TTL
ROOM_BACKEND = os.getenv("ROOM_BACKEND", "memory").lower()
ROOM_SWEEP_INTERVAL_SECONDS = int(os.getenv("ROOM_SWEEP_INTERVAL_SECONDS", 300))

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)
RELOAD = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")

INVALID_LINK_MESSAGE = "Invalid or expired link."
