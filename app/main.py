import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import Base, engine
from app.errors import QRScannerError
from app.routers.generator import router as generator_router
from app.routers.history import router as history_router
from app.routers.mode import router as mode_router
from app.routers.profile import router as profile_router
from app.routers.scanner import router as scanner_router
from app.services.scan_session import registry

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create database tables
    Base.metadata.create_all(bind=engine)
    yield
    await registry.close_all()


app = FastAPI(
    title="QR Scanner API",
    version="0.1.0",
    description="QR scanning, scan history, QR generation and user profiles",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],     # allow all origins during development
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(QRScannerError)
async def qr_scanner_error_handler(request: Request, exc: QRScannerError):
    logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/health")
async def health_check():
    return {"status": "ok"}


# Include the routers
app.include_router(scanner_router)
app.include_router(history_router)
app.include_router(generator_router)
app.include_router(profile_router)
app.include_router(mode_router)
