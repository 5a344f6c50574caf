from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import logging

# Import database components
from mostrador.database.database import engine, Base

# Import middleware
from mostrador.common.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from mostrador.common.exceptions import POSError
from mostrador.common.realtime import ChangeFeed
from mostrador.modules.cash_registers.close_requests import CloseRequestStore

# Import routers
from mostrador.modules.orders.router import orders_router
from mostrador.modules.cash_registers.router import cash_registers_router
from mostrador.modules.payments.router import payments_router
from mostrador.modules.coupons.router import coupons_router
from mostrador.modules.reports.routers import cash_registers_router as cash_registers_reports_router

# Import models for table creation
import mostrador.modules.models  # noqa: F401

from mostrador.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Mostrador POS API",
    description="Caja registradora y cobros de pedidos para punto de venta",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Estado compartido por todos los requests del proceso
app.state.change_feed = ChangeFeed()
app.state.close_requests = CloseRequestStore()

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Add your frontend URLs
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(POSError)
async def pos_error_handler(request: Request, exc: POSError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(orders_router, prefix="/api/v1")
app.include_router(cash_registers_router, prefix="/api/v1")
app.include_router(payments_router, prefix="/api/v1")
app.include_router(coupons_router, prefix="/api/v1")
app.include_router(cash_registers_reports_router, prefix="/api/v1")

# Create database tables (only for development; no migrations are shipped)
if settings.ENVIRONMENT == "development":
    Base.metadata.create_all(bind=engine)


@app.get("/")
async def read_root():
    return {
        "message": "Mostrador POS API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Mostrador POS API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Mostrador POS API shutting down...")
