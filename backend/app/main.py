from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.database import init_db, close_db
from app.core.exceptions import CollegeSyncError, DependencyFailure, error_response
from app.core.logging_config import logger
from app.core.middleware import RequestLoggingMiddleware
from app.api.v1.router import api_router


async def validate_critical_config():
    """Refuse to start in production with placeholder secrets"""
    if settings.ENVIRONMENT != "production":
        return

    problems = []
    if settings.JWT_SECRET_KEY == "CHANGE_ME":
        problems.append("JWT_SECRET_KEY is not set")
    if settings.SECRET_KEY == "CHANGE_ME":
        problems.append("SECRET_KEY is not set")
    if settings.DATABASE_URL.startswith("sqlite"):
        problems.append("DATABASE_URL points at SQLite")

    for problem in problems:
        logger.critical(f"[Startup] {problem}")
    if problems:
        raise RuntimeError("Invalid production configuration: " + "; ".join(problems))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    logger.info("=" * 60)
    logger.info(f"Starting {settings.APP_NAME}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"API Version: {settings.API_VERSION}")
    logger.info("=" * 60)

    await validate_critical_config()
    await init_db()
    logger.info("[Startup] Database tables ready")

    yield

    logger.info(f"Shutting down {settings.APP_NAME}...")
    await close_db()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Test lifecycle and assignment engine for college assessments",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    redirect_slashes=False
)

# Add middleware (order matters - last added runs first)
app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Response-Time"],
)


# Exception handlers
@app.exception_handler(CollegeSyncError)
async def collegesync_exception_handler(request: Request, exc: CollegeSyncError):
    if exc.status_code >= 500:
        logger.error(f"[{exc.code}] {exc.message} - {request.method} {request.url.path}")
    else:
        logger.info(f"[{exc.code}] {exc.message} - {request.method} {request.url.path}")
    return JSONResponse(status_code=exc.status_code, content=error_response(exc))


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    """Storage errors raised outside a service commit, e.g. during reads"""
    logger.log_error_with_context(exc, f"{request.method} {request.url.path}")
    return JSONResponse(status_code=503, content=error_response(DependencyFailure("database")))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "code": "INTERNAL_ERROR",
                "message": str(exc) if settings.DEBUG else "An error occurred",
                "details": {},
            },
        }
    )


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "app_name": settings.APP_NAME,
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


# Include API router
app.include_router(api_router, prefix=f"/api/{settings.API_VERSION}")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
