import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from . import models  # noqa: F401 - registers tables on Base.metadata
from .config import ALLOWED_ORIGINS, SECURITY_HEADERS_ENABLED, SEED_ON_STARTUP
from .database import Base, SessionLocal, engine
from .domain.accounts.router import audit_router, auth_router
from .domain.admin.router import router as admin_router
from .domain.billing.router import router as billing_router
from .domain.medical.router import router as medical_router
from .domain.patients.router import router as patients_router
from .domain.reports.router import router as reports_router
from .domain.scheduling.router import appointments_router, doctors_router
from .errors import ClinicError, clinic_error_handler, validation_exception_handler
from .rate_limiter import api_rate_limit
from .security_headers import SecurityHeadersMiddleware
from .seed import seed_database

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")
            raise

    if SEED_ON_STARTUP:
        db = SessionLocal()
        try:
            seed_database(db)
        finally:
            db.close()

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Clinic API", version="1.0.0", lifespan=lifespan)

app.add_exception_handler(ClinicError, clinic_error_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


if SECURITY_HEADERS_ENABLED:
    app.add_middleware(SecurityHeadersMiddleware, exclude_paths=["/health", "/docs", "/openapi.json"])
    logger.info("Security headers enabled")
else:
    logger.warning("Security headers DISABLED - only use in development!")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Routes
rate_limited = [Depends(api_rate_limit)]
app.include_router(auth_router, dependencies=rate_limited)
app.include_router(audit_router, dependencies=rate_limited)
app.include_router(patients_router, dependencies=rate_limited)
app.include_router(appointments_router, dependencies=rate_limited)
app.include_router(doctors_router, dependencies=rate_limited)
app.include_router(medical_router, dependencies=rate_limited)
app.include_router(billing_router, dependencies=rate_limited)
app.include_router(admin_router, dependencies=rate_limited)
app.include_router(reports_router, dependencies=rate_limited)


@app.get("/")
def root():
    return {"message": "Clinic API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}


@app.get("/api/health")
def api_health():
    return {"status": "ok", "service": "clinic-api"}
