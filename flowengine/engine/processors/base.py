"""Node Processor base class"""
from typing import Any, Dict

from ...domain.enums import NodeType
from ...domain.models import Execution, NodeResult


class NodeProcessor:
    """
    Executes one node type

    A processor receives an immutable node spec, a private copy of the
    execution context and the execution it runs for. It never writes the
    execution itself; all state changes go back to the engine through the
    returned NodeResult.
    """

    node_type: NodeType

    def process(self, node: Any, context: Dict[str, Any], execution: Execution) -> NodeResult:
        raise NotImplementedError
