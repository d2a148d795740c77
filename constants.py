import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

# 0 disables the ceiling
MAX_PARTICIPANTS = int(os.getenv("MAX_PARTICIPANTS", 8))

# WebSocket protocol ping cycle, handed to uvicorn. A peer that misses a pong
# within the timeout is dropped and goes through the normal close path.
HEARTBEAT_INTERVAL = float(os.getenv("HEARTBEAT_INTERVAL", 20))
HEARTBEAT_TIMEOUT = float(os.getenv("HEARTBEAT_TIMEOUT", 20))

AUTH_MODE = os.getenv("AUTH_MODE", "none").lower()  # none | static | redis
AUTH_TOKENS = [t.strip() for t in os.getenv("AUTH_TOKENS", "").split(",") if t.strip()]

REDIS_ENABLED = os.getenv("REDIS_ENABLED", "false").lower() in ("1", "true", "yes")
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

PRESENCE_TTL = int(os.getenv("PRESENCE_TTL", 600))
