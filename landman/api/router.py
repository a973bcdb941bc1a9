"""
Top-level API router.
Combines all sub-routers into a single router.
"""

from fastapi import APIRouter

from landman.api.health import router as health_router
from landman.api.tasks import router as tasks_router
from landman.api.documents import router as documents_router
from landman.api.jobs import router as jobs_router

api_router = APIRouter()

api_router.include_router(health_router)
api_router.include_router(tasks_router)
api_router.include_router(documents_router)
api_router.include_router(jobs_router)
