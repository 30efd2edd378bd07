"""API Dependencies - Common dependencies for routes"""
from functools import lru_cache
from typing import Optional
from fastapi import Depends, Header

from ..engine.engine import WorkflowEngine
from ..engine.sla_sweep import SlaSweep
from ..services.workflow_service import WorkflowService
from ..utils.logger import set_correlation_id
from ..utils.idgen import generate_correlation_id


async def get_correlation_id_dep(
    x_correlation_id: Optional[str] = Header(None, alias="X-Correlation-Id")
) -> str:
    """
    Get or generate correlation ID for request tracing

    If client provides X-Correlation-Id, use it.
    Otherwise generate a new one.
    """
    correlation_id = x_correlation_id or generate_correlation_id()
    set_correlation_id(correlation_id)
    return correlation_id


@lru_cache()
def get_engine_dep() -> WorkflowEngine:
    """Process-wide engine wired to the MongoDB stores"""
    return WorkflowEngine()


def get_workflow_service_dep(engine: WorkflowEngine = Depends(get_engine_dep)) -> WorkflowService:
    return WorkflowService(engine)


def get_sla_sweep_dep(engine: WorkflowEngine = Depends(get_engine_dep)) -> SlaSweep:
    return SlaSweep(engine)
