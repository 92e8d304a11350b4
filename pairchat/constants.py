"""Runtime configuration read from the environment."""
import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3002))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

CORS_ORIGINS = [o.strip() for o in os.getenv("PAIRCHAT_CORS_ORIGINS", "*").split(",") if o.strip()]

# Served at "/" when set and the directory exists.
STATIC_DIR = os.getenv("PAIRCHAT_STATIC_DIR", None)

CHAT_MAX_LENGTH = int(os.getenv("PAIRCHAT_CHAT_MAX_LENGTH", 2000))

DEFAULT_ICE_SERVERS = [
    "stun:stun.l.google.com:19302",
    "stun:stun1.l.google.com:19302",
    "stun:stun2.l.google.com:19302",
    "stun:stun3.l.google.com:19302",
    "stun:stun4.l.google.com:19302",
]
_ice_env = os.getenv("PAIRCHAT_ICE_SERVERS")
ICE_SERVERS = [u.strip() for u in _ice_env.split(",") if u.strip()] if _ice_env else DEFAULT_ICE_SERVERS

SIGNALING_LOG_SIZE = int(os.getenv("PAIRCHAT_SIGNALING_LOG_SIZE", 200))

SERVER_URL = os.getenv("PAIRCHAT_SERVER_URL", f"ws://localhost:{PORT}/ws")

__all__ = [
    "HOST",
    "PORT",
    "LOG_LEVEL",
    "LOG_FILE",
    "CORS_ORIGINS",
    "STATIC_DIR",
    "CHAT_MAX_LENGTH",
    "DEFAULT_ICE_SERVERS",
    "ICE_SERVERS",
    "SIGNALING_LOG_SIZE",
    "SERVER_URL",
]
