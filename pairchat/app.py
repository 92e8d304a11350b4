from __future__ import annotations

import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .constants import CORS_ORIGINS, LOG_FILE, LOG_LEVEL, STATIC_DIR
from .logging_config import get_logger, setup_logging
from .routers import stats as stats_router
from .routers import websockets as ws_router

setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)

# -----------------------------
# FastAPI app instance
# -----------------------------

app = FastAPI(title="pairchat signaling server")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(stats_router.router)
app.include_router(ws_router.router)

# -----------------------------
# Static file mounting
# -----------------------------

class NoCacheStaticFiles(StaticFiles):
    async def get_response(self, path: str, scope):  # type: ignore[override]
        response = await super().get_response(path, scope)
        response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
        response.headers["Pragma"] = "no-cache"
        response.headers["Expires"] = "0"
        return response


# Mounted last so it does not shadow /ws, /health and /stats.
if STATIC_DIR and os.path.isdir(STATIC_DIR):
    app.mount("/", NoCacheStaticFiles(directory=STATIC_DIR, html=True), name="frontend")
    logger.info(f"Serving static files from {STATIC_DIR}")
elif STATIC_DIR:
    logger.warning(f"Static directory {STATIC_DIR} does not exist; not mounted")

logger.info("pairchat application initialized")

__all__ = ["app", "NoCacheStaticFiles"]
