"""
DawaCare - Main FastAPI Application
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from dawacare.config import settings
from dawacare.database import Base, engine
from dawacare.exceptions import PharmacyError

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Multi-branch pharmacy inventory, controlled substance register and offline sync",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PharmacyError)
async def pharmacy_error_handler(request: Request, exc: PharmacyError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        messages.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(status_code=400, content={"error": "; ".join(messages) or "Invalid request"})


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "version": settings.APP_VERSION}


@app.on_event("startup")
def create_tables():
    """Create missing tables (no-op for tables that already exist)."""
    if not settings.DB_AUTO_CREATE:
        return
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured on %s", engine.url.render_as_string(hide_password=True))


# Import routers (models must be registered on Base before create_all)
from dawacare.api import (  # noqa: E402
    sync_router, medicines_router, purchases_router, stock_transfers_router,
    controlled_substances_router, sales_router, prescriptions_router,
)

app.include_router(sync_router, prefix="/api/sync", tags=["Sync"])
app.include_router(medicines_router, prefix="/api/medicines", tags=["Medicines"])
app.include_router(purchases_router, prefix="/api", tags=["Purchases"])
app.include_router(stock_transfers_router, prefix="/api/stock-transfers", tags=["Stock Transfers"])
app.include_router(controlled_substances_router, prefix="/api", tags=["Controlled Substances"])
app.include_router(sales_router, prefix="/api/sales", tags=["Sales"])
app.include_router(prescriptions_router, prefix="/api/prescriptions", tags=["Prescriptions"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("dawacare.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
