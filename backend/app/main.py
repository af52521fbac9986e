"""
FastAPI application entry point.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from pathlib import Path
import logging
from .config import settings

from .api import companies_router, tasks_router
from .utils.errors import TaskDeskError

from .database import engine, Base
from . import models  # noqa: F401  (registers the tables on Base.metadata)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# Disable verbose SQLAlchemy logging
logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
logging.getLogger('sqlalchemy.pool').setLevel(logging.WARNING)
logging.getLogger('sqlalchemy.dialects').setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Task tracking and approval workflow API",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.FRONTEND_URL,
        "http://localhost:3000",
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TaskDeskError)
async def task_desk_error_handler(request: Request, exc: TaskDeskError):
    """Render domain errors as {message, [error], [fallback]} with their status code."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.error)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    """Render request-shape and permission errors in the same {message} body as domain errors."""
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=getattr(exc, "headers", None))


# Include routers
app.include_router(tasks_router)
app.include_router(companies_router)

# Mount static files directory for serving uploaded attachments
# This allows /uploads/... attachment paths to be served directly
uploads_dir = Path(settings.PUBLIC_DIR) / "uploads"
app.mount("/uploads", StaticFiles(directory=str(uploads_dir), check_dir=False), name="uploads")


@app.on_event("startup")
async def create_tables():
    """Create missing tables; schema changes go through Alembic."""
    Base.metadata.create_all(bind=engine)
    uploads_dir.mkdir(parents=True, exist_ok=True)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Task Desk API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "environment": settings.APP_ENV
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.DEBUG
    )
