"""
SnapReceipts backend — FastAPI application entry‑point.
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from app.config import settings
from app.database import Base, engine
from app.errors import ReceiptAppError

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s  %(name)-30s  %(levelname)-5s  %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: ensure storage dir + tables exist
    os.makedirs(os.path.join(settings.STORAGE_DIR, settings.STORAGE_BUCKET), exist_ok=True)
    # Import models so Base.metadata knows about them
    from app import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready (%s)", settings.DATABASE_URL)
    yield
    logger.info("Shutting down")


app = FastAPI(
    title="SnapReceipts",
    description="Receipt photo → AI extraction → database → Google Drive / Sheets",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ReceiptAppError)
async def receipt_app_error_handler(request: Request, exc: ReceiptAppError):
    logger.warning("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/")
async def root():
    return {"service": "SnapReceipts", "version": "0.1.0", "status": "running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


app.mount(
    f"/storage/{settings.STORAGE_BUCKET}",
    StaticFiles(directory=os.path.join(settings.STORAGE_DIR, settings.STORAGE_BUCKET), check_dir=False),
    name="storage",
)


# ── Register API routers ─────────────────────────────────────────────────
from app.routers.categories import router as categories_router  # noqa: E402
from app.routers.google import router as google_router  # noqa: E402
from app.routers.receipts import router as receipts_router  # noqa: E402
from app.routers.sessions import router as sessions_router  # noqa: E402
from app.routers.sync_jobs import router as sync_jobs_router  # noqa: E402

app.include_router(receipts_router, prefix="/api", tags=["Receipts"])
app.include_router(sessions_router, prefix="/api", tags=["Upload Sessions"])
app.include_router(google_router, prefix="/api", tags=["Google Sync"])
app.include_router(sync_jobs_router, prefix="/api", tags=["Sync Jobs"])
app.include_router(categories_router, prefix="/api", tags=["Categories"])
