# motelhub/main.py
from dotenv import load_dotenv

# Load .env BEFORE anything reads the settings
load_dotenv()

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import health as health_api
from .api.invoices import main as invoices_main_api
from .api.notifications import main as notifications_main_api
from .api.payments import main as payments_main_api
from .core.config import get_settings
from .core.errors import BillingError
from .db.engine import create_db_and_tables

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - [%(name)s] - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

settings = get_settings()


# --- Database Initialization ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()
    logger.info("Database tables initialized")
    yield


app = FastAPI(title="MotelHub Billing", version="1.0.0", lifespan=lifespan)


# ============================================================================
# --- SECURITY: CORS ---
# ============================================================================
origins = [origin.strip() for origin in settings.allowed_origins.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# --- SECURITY: HTTP HEADERS ---
# ============================================================================
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if settings.is_production:
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


# ============================================================================
# --- EXCEPTION HANDLERS ---
# ============================================================================
def error_response(status_code: int, error: dict) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError):
    return error_response(exc.status_code, exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return error_response(
        status.HTTP_400_BAD_REQUEST,
        {"code": "VALIDATION_ERROR", "message": "Dữ liệu không hợp lệ", "details": details},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        {"code": "INTERNAL_ERROR", "message": "Đã xảy ra lỗi"},
    )


# ============================================================================
# --- ROUTERS INCLUSION ---
# ============================================================================
app.include_router(health_api.router, prefix="/api")
app.include_router(invoices_main_api.router, prefix="/api", tags=["Invoices"])
app.include_router(payments_main_api.router, prefix="/api", tags=["Payments"])
app.include_router(notifications_main_api.router, prefix="/api", tags=["Notifications"])
