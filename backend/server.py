from fastapi import FastAPI, APIRouter, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
import os
import logging
from pathlib import Path
import sys

# Add backend to path for imports
sys.path.insert(0, str(Path(__file__).parent))

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

from services.logging_service import setup_logging, RequestLoggingMiddleware
from services.rate_limit import limiter, rate_limit_exceeded_handler
from db import init_db

setup_logging(level=os.environ.get("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

# Create the main app
app = FastAPI(
    title="Backlog Pilot API",
    description="Backlogs, AI-assisted user stories, tasks and tech stack recommendations",
    version="1.0.0"
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are a 400 listing every offending field"""
    errors = [
        {
            "field": ".".join(str(part) for part in err["loc"] if part != "body"),
            "message": err["msg"],
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({"detail": "Invalid request format", "errors": errors})
    )


# Create a router with the /api prefix
api_router = APIRouter(prefix="/api")

# Import and include route modules
from routes.backlog import router as backlog_router
from routes.chat import router as chat_router
from routes.user_story import router as user_story_router
from routes.task import router as task_router
from routes.tech_stack import router as tech_stack_router

api_router.include_router(backlog_router)
api_router.include_router(chat_router)
api_router.include_router(user_story_router)
api_router.include_router(task_router)
api_router.include_router(tech_stack_router)


# Health check endpoint
@api_router.get("/")
async def root():
    return {"message": "Backlog Pilot API", "status": "healthy"}


@api_router.get("/health")
async def health_check():
    return {"status": "healthy", "service": "backlog-pilot"}


# Include the router in the main app
app.include_router(api_router)

app.add_middleware(RequestLoggingMiddleware)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    logger.info("Starting Backlog Pilot API...")
    await init_db()
    logger.info("Backlog Pilot API started successfully")
