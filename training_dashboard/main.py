import logging
import os
import sys
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .auth import router as auth_router
from .config import settings
from .database import Base, SessionLocal, engine
from .deps import get_strava_client
from .errors import ConfigurationError, DashboardError
from .limiter import limiter
from .routes import router as api_router
from .strava import sync_recent_activities

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stderr
)
logger = logging.getLogger(__name__)

async def sync_on_startup():
    """One-shot Strava sync; failures are logged and startup continues."""
    db = SessionLocal()
    try:
        report = await sync_recent_activities(db, get_strava_client(), settings)
        if report is None:
            logger.info("Skipping startup sync: Strava is not connected")
    except DashboardError as e:
        logger.error(f"Startup sync failed: {e}")
    finally:
        db.close()

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create tables on startup
    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized")
    if settings.SYNC_ON_STARTUP:
        await sync_on_startup()
    yield

app = FastAPI(title="Running Dashboard", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# Include routers
app.include_router(auth_router, prefix="/auth", tags=["auth"])
app.include_router(api_router, prefix="/api", tags=["api"])

@app.exception_handler(ConfigurationError)
async def configuration_exception_handler(request: Request, exc: ConfigurationError):
    logger.error(f"Configuration error: {exc}")
    return JSONResponse(status_code=500, content={"detail": str(exc)})

@app.exception_handler(DashboardError)
async def dashboard_exception_handler(request: Request, exc: DashboardError):
    logger.error(f"Unhandled {type(exc).__name__}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global Exception: {exc}\n{traceback.format_exc()}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error. Check logs for traceback."},
    )

# The front-end build is served from the same origin when STATIC_DIR is set
if settings.STATIC_DIR and os.path.isdir(settings.STATIC_DIR):
    app.mount("/", StaticFiles(directory=settings.STATIC_DIR, html=True), name="static")

def run():
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)

if __name__ == "__main__":
    run()
