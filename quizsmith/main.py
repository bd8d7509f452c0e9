# Load environment variables FIRST before any other imports
from dotenv import load_dotenv
load_dotenv()

import os
import logging
import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from quizsmith import __version__
from quizsmith.database import engine, Base
from quizsmith.exceptions import QuizsmithError
from quizsmith.models import models  # noqa: F401  registers tables on Base
from quizsmith.routers import generation, usage

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

# Initialize Sentry for error monitoring
sentry_dsn = os.getenv("SENTRY_DSN")
if sentry_dsn:
    sentry_sdk.init(
        dsn=sentry_dsn,
        traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
        environment=ENVIRONMENT,
    )

# Create database tables
Base.metadata.create_all(bind=engine)

# OpenAPI tag metadata for organized documentation
tags_metadata = [
    {
        "name": "generation",
        "description": "Generate multiple-choice questions for a quiz from an uploaded document.",
    },
    {
        "name": "usage",
        "description": "Monthly plan limits: check-and-consume and usage summaries.",
    },
]

app = FastAPI(
    title="Quizsmith API",
    description="""
## Quizsmith Document-to-Quiz API

Upload a document, then generate multiple-choice questions from its text.

### Supported documents
Plain text, Word (.docx), PowerPoint (.pptx) and PDF files with a text layer.

### Monthly plan limits
| Plan | AI generations | Document uploads | Quizzes created |
|------|----------------|------------------|-----------------|
| Free | 50 | 3 | 5 |
| Standard | 400 | 15 | 50 |
| Pro | Unlimited | Unlimited | Unlimited |
    """,
    version=__version__,
    openapi_tags=tags_metadata,
)

# CORS middleware for the Next.js frontend
ALLOWED_ORIGINS = [
    "http://localhost:3000",  # Next.js dev server
    "http://localhost:3001",  # Next.js dev server (alternate port)
]

# Allow additional origins from environment (for preview deploys)
extra_origins = os.getenv("CORS_ALLOWED_ORIGINS", "")
if extra_origins:
    ALLOWED_ORIGINS.extend([o.strip() for o in extra_origins.split(",") if o.strip()])

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "Accept"],
)


# Error handlers
def _include_details() -> bool:
    return os.getenv("ENVIRONMENT", ENVIRONMENT) != "production"


@app.exception_handler(QuizsmithError)
async def quizsmith_error_handler(request: Request, exc: QuizsmithError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_response(_include_details()))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        fields.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", "invalid"))
    body = {"error": "Missing or invalid request fields"}
    if _include_details():
        body["details"] = "; ".join(fields)
    return JSONResponse(status_code=400, content=body)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    sentry_sdk.capture_exception(exc)
    body = {"error": "Internal server error"}
    if _include_details():
        body["details"] = str(exc)
    return JSONResponse(status_code=500, content=body)


# Include routers
app.include_router(generation.router)  # Document -> quiz generation
app.include_router(usage.router)  # Monthly plan limits


@app.get("/")
def root():
    return {
        "message": "Quizsmith API",
        "version": __version__,
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    return {"status": "healthy"}
