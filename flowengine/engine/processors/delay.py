"""Delay Processor - Pause until a point in time"""
from datetime import datetime
from typing import Any, Callable, Dict

from .base import NodeProcessor
from ...domain.enums import DelayType, NodeType
from ...domain.errors import DefinitionError
from ...domain.models import DelayNode, Execution, NodeResult
from ...utils.time import add_days, add_hours, format_iso, parse_iso, utc_now
from ...utils.logger import get_logger

logger = get_logger(__name__)


class DelayProcessor(NodeProcessor):
    """Always pauses; the SLA sweep resumes the execution once resume_at passes"""

    node_type = NodeType.DELAY

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.clock = clock

    def process(self, node: DelayNode, context: Dict[str, Any], execution: Execution) -> NodeResult:
        config = node.config
        try:
            delay_type = DelayType(config.delay_type.lower())
        except ValueError:
            raise DefinitionError(
                f"Unknown delay type: {config.delay_type}",
                details={"node_id": node.id, "delay_type": config.delay_type}
            )

        now = self.clock()
        if delay_type == DelayType.UNTIL:
            if not config.delay_until:
                raise DefinitionError(
                    f"Delay node '{node.id}' needs delayUntil",
                    details={"node_id": node.id}
                )
            try:
                resume_at = parse_iso(config.delay_until)
            except (ValueError, OverflowError):
                raise DefinitionError(
                    f"Invalid delayUntil timestamp: {config.delay_until}",
                    details={"node_id": node.id, "delay_until": config.delay_until}
                )
        else:
            if config.delay_value is None:
                raise DefinitionError(
                    f"Delay node '{node.id}' needs delayValue for {delay_type.value}",
                    details={"node_id": node.id}
                )
            if delay_type == DelayType.HOURS:
                resume_at = add_hours(now, config.delay_value)
            else:
                resume_at = add_days(now, config.delay_value)

        logger.info(
            f"Delaying until {format_iso(resume_at)}",
            extra={"execution_id": execution.execution_id, "node_id": node.id}
        )
        return NodeResult(
            next_node_id=node.next,
            should_pause=True,
            resume_at=resume_at,
            details={"delay_type": delay_type.value, "resume_at": format_iso(resume_at)}
        )
