"""
Main FastAPI application for the Staff Verification Service
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError
import logging

from staff_verify import __version__
from staff_verify.config import settings
from staff_verify.db.database import Base, engine
from staff_verify.exceptions import (
    ApplicantNotFoundError,
    IllegalTransitionError,
    InvalidSubmissionError,
    RequestNotFoundError
)
from staff_verify.api import (
    system,
    verification,
    review,
    roster,
    notifications
)

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.APP_DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Starting Staff Verification Service...")
    Base.metadata.create_all(bind=engine)

    yield

    # Shutdown
    logger.info("Shutting down Staff Verification Service...")
    engine.dispose()


app = FastAPI(
    title="Staff Verification Service",
    description="Auto-scoring and review workflow for staff verification requests",
    version=__version__,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(IllegalTransitionError)
async def illegal_transition_handler(request: Request, exc: IllegalTransitionError):
    return JSONResponse(
        status_code=409,
        content={
            "error": "illegal_transition",
            "detail": str(exc),
            "retryable": False,
            "current_status": exc.current_status
        }
    )


@app.exception_handler(RequestNotFoundError)
async def request_not_found_handler(request: Request, exc: RequestNotFoundError):
    return JSONResponse(
        status_code=404,
        content={"error": "not_found", "detail": str(exc), "retryable": False}
    )


@app.exception_handler(ApplicantNotFoundError)
async def applicant_not_found_handler(request: Request, exc: ApplicantNotFoundError):
    return JSONResponse(
        status_code=404,
        content={"error": "applicant_not_found", "detail": str(exc), "retryable": False}
    )


@app.exception_handler(InvalidSubmissionError)
async def invalid_submission_handler(request: Request, exc: InvalidSubmissionError):
    return JSONResponse(
        status_code=422,
        content={"error": "invalid_submission", "detail": str(exc), "retryable": False}
    )


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Storage error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={
            "error": "storage_unavailable",
            "detail": "Storage is temporarily unavailable, please retry",
            "retryable": True
        }
    )


# Include routers
app.include_router(system.router, tags=["System"])
app.include_router(verification.router, prefix="/verification", tags=["Verification"])
app.include_router(review.router, prefix="/review", tags=["Review"])
app.include_router(roster.router, prefix="/roster", tags=["Roster"])
app.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Staff Verification",
        "version": __version__,
        "status": "running"
    }
