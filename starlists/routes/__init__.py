from fastapi import APIRouter

from .health import router as health_router
from .tasks import router as tasks_router
from .plan import router as plan_router
from .lists import router as lists_router
from .classify import router as classify_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(tasks_router)
api_router.include_router(plan_router)
api_router.include_router(lists_router)
api_router.include_router(classify_router)
