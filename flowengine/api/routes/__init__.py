"""API Routes module"""
from fastapi import APIRouter

from .workflows import router as workflows_router
from .executions import router as executions_router
from .tasks import router as tasks_router
from .sla import router as sla_router

# Main API router
api_router = APIRouter()

api_router.include_router(workflows_router, prefix="/workflows", tags=["Workflows"])
api_router.include_router(executions_router, prefix="/executions", tags=["Executions"])
api_router.include_router(tasks_router, prefix="/tasks", tags=["Tasks"])
api_router.include_router(sla_router, prefix="/sla", tags=["SLA"])

__all__ = ["api_router"]
