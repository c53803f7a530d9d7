from fastapi import APIRouter

from . import statistics, study, sync

api_router = APIRouter()
api_router.include_router(statistics.router)
api_router.include_router(sync.router)
api_router.include_router(study.router)

__all__ = ["api_router"]
