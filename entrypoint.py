import uvicorn
from constants import HOST, PORT, LOG_LEVEL, LOG_FILE, HEARTBEAT_INTERVAL, HEARTBEAT_TIMEOUT
from logging_config import setup_logging

# Setup logging before importing app
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)

from app import app
from logging_config import get_logger

logger = get_logger(__name__)

if __name__ == "__main__":
    logger.info(f"Starting signaling relay on {HOST}:{PORT} (ping every {HEARTBEAT_INTERVAL}s, timeout {HEARTBEAT_TIMEOUT}s)")
    uvicorn.run(
        app,
        host=HOST,
        port=PORT,
        # Protocol-level liveness: a missed pong drops the socket, which the
        # /ws endpoint turns into the usual leave + peer-left
        ws_ping_interval=HEARTBEAT_INTERVAL or None,
        ws_ping_timeout=HEARTBEAT_TIMEOUT or None,
    )
