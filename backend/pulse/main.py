import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables before anything reads them
load_dotenv()

from fastapi import FastAPI  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402

from pulse.config import get_settings  # noqa: E402
from pulse.database import init_db  # noqa: E402
from pulse.routes_core import router  # noqa: E402

# Logging setup (structured-ish JSON)
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='{"time":"%(asctime)s","level":"%(levelname)s","message":"%(message)s","module":"%(name)s"}',
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    try:
        logger.info("Connecting to database to create tables...")
        init_db()
    except Exception as e:
        logger.error(f"Database initialization error: {e}")

    if settings.scheduler_enabled:
        from pulse.scheduler import start_scheduler
        start_scheduler(settings)

    yield

    if settings.scheduler_enabled:
        from pulse.scheduler import stop_scheduler
        stop_scheduler()
    logger.info("Shutting down application")


app = FastAPI(title="Pulse Dashboard API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

app.include_router(router)
