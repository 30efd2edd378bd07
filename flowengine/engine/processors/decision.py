"""Decision Processor - Conditional branching"""
from typing import Any, Dict, Optional

from .base import NodeProcessor
from ..condition_evaluator import ConditionEvaluator
from ...domain.enums import NodeType
from ...domain.errors import DefinitionError
from ...domain.models import DecisionNode, Execution, NodeResult
from ...utils.logger import get_logger

logger = get_logger(__name__)


class DecisionProcessor(NodeProcessor):
    """
    Evaluate the node's condition and pick the true or false branch

    Never pauses. A branch that the condition selects but the node does not
    define is a definition error.
    """

    node_type = NodeType.DECISION

    def __init__(self, evaluator: Optional[ConditionEvaluator] = None):
        self.evaluator = evaluator or ConditionEvaluator()

    def process(self, node: DecisionNode, context: Dict[str, Any], execution: Execution) -> NodeResult:
        config = node.config
        result = self.evaluator.evaluate(config.condition, context)
        next_node_id = config.true_node_id if result else config.false_node_id

        if not next_node_id:
            branch = "true" if result else "false"
            raise DefinitionError(
                f"Decision node '{node.id}' has no {branch} branch",
                details={"node_id": node.id, "condition": config.condition, "result": result}
            )

        logger.debug(
            f"Decision '{config.condition}' -> {result}",
            extra={"execution_id": execution.execution_id, "node_id": node.id}
        )
        return NodeResult(
            next_node_id=next_node_id,
            details={"condition": config.condition, "result": result}
        )
