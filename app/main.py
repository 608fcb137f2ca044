from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from contextlib import asynccontextmanager
import logging

from app.config import settings
from app.database import close_db, init_db
from app.api.v1.wallets import router as wallet_router
from app.api.v1.matches import router as match_router
from app.api.v1.admin import router as admin_router
from app.services import events
from app.api.errors import escrow_http_error
from app.services.exceptions import EscrowError

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _safe_db_target(url: str) -> str:
    return url.split('@')[1] if '@' in url else url.split('://')[0]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire match event subscribers for the lifetime of the process"""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Database: {_safe_db_target(settings.DATABASE_URL)}")
    logger.info(
        f"Escrow rules: min stake {settings.PLATFORM_MIN_STAKE}, default fee {settings.DEFAULT_FEE_PERCENTAGE}%, "
        f"dispute justification {'required' if settings.REQUIRE_DISPUTE_JUSTIFICATION else 'optional'}"
    )
    if settings.EMERGENCY_ADMIN_EMAILS:
        logger.warning(f"Emergency admin allowlist active ({len(settings.EMERGENCY_ADMIN_EMAILS)} entries)")
    if settings.DEBUG:
        # Local development only; deployed databases are managed by Alembic
        await init_db()

    events.subscribe(events.log_status_change)
    yield
    events.unsubscribe(events.log_status_change)

    logger.info(f"Shutting down {settings.APP_NAME}...")
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Escrow holds, match lifecycle, settlement payouts and duplicate payout auditing",
    docs_url="/docs",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Validation error handler - field level messages for malformed stakes, fees and formats
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        error_detail = {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        }
        if error.get("input") is not None:
            error_detail["input"] = error["input"]
        errors.append(error_detail)

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=jsonable_encoder({
            "error": "Validation Error",
            "message": "The request contains invalid data",
            "details": errors,
            "request_path": request.url.path
        })
    )


# Escrow failures that escape a route still reach the client with their stable code
@app.exception_handler(EscrowError)
async def escrow_exception_handler(request: Request, exc: EscrowError):
    logger.warning(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder({"detail": escrow_http_error(exc).detail})
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "An internal server error occurred",
            "error": str(exc) if settings.DEBUG else "Internal Server Error"
        }
    )


@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION
    }


app.include_router(wallet_router, prefix="/api/v1")
app.include_router(match_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
