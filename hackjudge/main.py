"""
hackjudge/main.py
FastAPI application: judging, leaderboard and review-integrity API
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from hackjudge import __version__
from hackjudge.config.settings import FeatureFlags, Settings
from hackjudge.database import close_db, init_db
from hackjudge.errors import ERROR_MAPPING, APIError, ErrorCode, RateLimitError, new_log_id, wrap_store_failure
from hackjudge.realtime.notifier import get_notifier
from hackjudge.routes import router as api_router
from hackjudge.security.rate_limit import limiter

logging.basicConfig(
    level=Settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting application...")
    try:
        await init_db()
        logger.info("Database connected successfully")
    except Exception as e:
        logger.error(f"Failed to connect to database: {str(e)}")
        raise

    yield

    logger.info("Shutting down application...")
    try:
        await get_notifier().close()
        await close_db()
    except Exception as e:
        logger.error(f"Error during shutdown: {str(e)}")


app = FastAPI(
    title="HackJudge API",
    description="Hackathon judging, live leaderboards and review integrity",
    version=__version__,
    docs_url="/docs" if Settings.ENVIRONMENT == "development" else None,
    redoc_url="/redoc" if Settings.ENVIRONMENT == "development" else None,
    lifespan=lifespan
)

# Attach rate limiter to the app
app.state.limiter = limiter

app.add_middleware(
    CORSMiddleware,
    allow_origins=Settings.allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"Rate limit hit on {request.url.path}: {exc.detail}")
    return RateLimitError(f"Rate limit exceeded: {exc.detail}").to_response()


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")

    error_details = [
        {"loc": error.get("loc"), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "error": "Validation Error",
            "message": "Request validation failed",
            "code": ErrorCode.VALIDATION_ERROR,
            "details": {"errors": error_details}
        }
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(f"HTTP exception on {request.url.path}: {exc.detail}")
    error, code = ERROR_MAPPING.get(exc.status_code, ("Error", ErrorCode.INVALID_INPUT))
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": error,
            "message": str(exc.detail),
            "code": code
        }
    )


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    if exc.is_transient:
        logger.error(f"API error on {request.url.path}: {exc.code} - {exc.message}")
    else:
        logger.warning(f"API error on {request.url.path}: {exc.code} - {exc.message}")
    return exc.to_response()


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    # Store failures not already wrapped by a service
    return wrap_store_failure(exc, request.url.path).to_response()


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    log_id = new_log_id()
    logger.exception(f"[{log_id}] Unhandled exception on {request.url.path}: {type(exc).__name__}")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "Internal Error",
            "message": "An unexpected error occurred. Please try again later.",
            "code": ErrorCode.INTERNAL_ERROR,
            "details": {"log_id": log_id}
        }
    )


@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "environment": Settings.ENVIRONMENT,
        "version": __version__,
        "features": {
            "lock_finalized_rounds": FeatureFlags.LOCK_FINALIZED_ROUNDS,
            "require_attendance_code": FeatureFlags.REQUIRE_ATTENDANCE_CODE,
            "flag_analysis_on_review": FeatureFlags.FLAG_ANALYSIS_ON_REVIEW,
        },
    }
