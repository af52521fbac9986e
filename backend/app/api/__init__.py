"""
API routes package.
"""
from .companies import router as companies_router
from .tasks import router as tasks_router

__all__ = ["companies_router", "tasks_router"]
