"""SLA API Routes - On-demand sweep"""
from fastapi import APIRouter, Depends

from ..deps import get_correlation_id_dep, get_sla_sweep_dep
from ...domain.models import SweepReport
from ...engine.sla_sweep import SlaSweep

router = APIRouter()


@router.post("/sweep", response_model=SweepReport)
def run_sla_sweep(
    sweep: SlaSweep = Depends(get_sla_sweep_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Run one SLA sweep now, outside the scheduler interval"""
    return sweep.run()
