"""Node processors and the registry that dispatches to them"""
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Optional
import httpx

from .base import NodeProcessor
from .decision import DecisionProcessor
from .action import ActionProcessor
from .assignment import AssignmentProcessor
from .notification import NotificationProcessor
from .delay import DelayProcessor
from .integration import IntegrationProcessor
from ..condition_evaluator import ConditionEvaluator
from ...domain.enums import NodeType
from ...domain.errors import DefinitionError
from ...domain.models import Execution, NodeResult
from ...repositories.base import TaskStore
from ...services.directory_service import DirectoryLookup
from ...services.domain_operations import DomainOperations
from ...services.notification_service import NotificationSender
from ...utils.time import utc_now


class NodeProcessorRegistry:
    """Closed mapping from node type to processor"""

    def __init__(self, processors: Iterable[NodeProcessor]):
        self._processors: Dict[NodeType, NodeProcessor] = {p.node_type: p for p in processors}

    def get(self, node_type: Any) -> NodeProcessor:
        try:
            processor = self._processors.get(NodeType(node_type))
        except ValueError:
            processor = None
        if processor is None:
            raise DefinitionError(
                f"No processor for node type '{node_type}'",
                details={"node_type": str(node_type)}
            )
        return processor

    def process(self, node: Any, context: Dict[str, Any], execution: Execution) -> NodeResult:
        return self.get(node.type).process(node, context, execution)


def build_registry(
    tasks: TaskStore,
    operations: DomainOperations,
    directory: DirectoryLookup,
    sender: NotificationSender,
    evaluator: Optional[ConditionEvaluator] = None,
    clock: Callable[[], datetime] = utc_now,
    http_transport: Optional[httpx.BaseTransport] = None
) -> NodeProcessorRegistry:
    """Registry with one processor per node type"""
    return NodeProcessorRegistry([
        DecisionProcessor(evaluator or ConditionEvaluator(clock)),
        ActionProcessor(operations),
        AssignmentProcessor(tasks, directory, clock),
        NotificationProcessor(sender, directory),
        DelayProcessor(clock),
        IntegrationProcessor(http_transport),
    ])


__all__ = [
    "NodeProcessor",
    "NodeProcessorRegistry",
    "build_registry",
    "DecisionProcessor",
    "ActionProcessor",
    "AssignmentProcessor",
    "NotificationProcessor",
    "DelayProcessor",
    "IntegrationProcessor",
]
