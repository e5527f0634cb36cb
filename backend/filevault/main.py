"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from filevault.config import settings
from filevault.database import engine, get_db
from filevault.errors import register_error_handlers
from filevault.models import Base

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and the storage root on startup."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    Path(settings.FILE_STORAGE_PATH).mkdir(parents=True, exist_ok=True)
    logger.info(f"Storing files under {Path(settings.FILE_STORAGE_PATH).resolve()}")

    yield

    await engine.dispose()


app = FastAPI(
    title="FileVault API",
    version="1.0.0",
    description="Personal file management: upload, browse, preview, download.",
    lifespan=lifespan,
)

# CORS
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)


@app.get(f"{settings.API_PREFIX}/health")
async def health_check():
    """Verify API and database connectivity."""
    try:
        async for db in get_db():
            await db.execute(text("SELECT 1"))
            return {"success": True, "status": "ok", "database": "connected"}
    except Exception as e:
        logger.warning(f"Health check failed: {e}")
        return {"success": False, "status": "error", "database": "unavailable"}


# Register routers
from filevault.routes.files import router as files_router
from filevault.routes.users import router as users_router
app.include_router(files_router)
app.include_router(users_router)
