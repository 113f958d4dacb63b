"""
Twofactor Authenticator - Main Application
TOTP second factor enrollment, verification and revocation service
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from twofactor import __version__
from twofactor.auth.exceptions import TwoFactorError
from twofactor.auth.routes import router as auth_router
from twofactor.auth.two_factor_routes import router as two_factor_router
from twofactor.config import get_settings
from twofactor.database import init_db

logger = logging.getLogger(__name__)


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    settings = get_settings()
    configure_logging(settings.log_level)
    init_db()
    if settings.authenticator_disable_time_drift:
        logger.info("TOTP time drift tolerance is disabled")
    logger.info("Twofactor service started")
    yield


app = FastAPI(
    title="Twofactor Authenticator",
    description="TOTP second factor enrollment, verification and revocation",
    version=__version__,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TwoFactorError)
async def two_factor_error_handler(request: Request, exc: TwoFactorError):
    """Return the client-facing message; details stay in the log"""
    logger.info(f"{type(exc).__name__} on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.public_message}
    )


app.include_router(auth_router)
app.include_router(two_factor_router)


@app.get("/api/health")
async def health():
    """Liveness check"""
    return {"status": "ok", "version": __version__}
