"""Action Processor - Automated domain operations"""
from typing import Any, Dict, Optional

from .base import NodeProcessor
from ...domain.enums import ActionType, NodeType
from ...domain.errors import ActionExecutionError, DefinitionError, DomainError
from ...domain.models import ActionNode, Execution, NodeResult
from ...services.domain_operations import DomainOperations
from ...utils.logger import get_logger

logger = get_logger(__name__)


class ActionProcessor(NodeProcessor):
    """Run exactly one domain operation against context.requestId"""

    node_type = NodeType.ACTION

    def __init__(self, operations: DomainOperations):
        self.operations = operations

    def process(self, node: ActionNode, context: Dict[str, Any], execution: Execution) -> NodeResult:
        config = node.config
        try:
            action = ActionType(config.action.upper())
        except ValueError:
            raise DefinitionError(
                f"Unknown action type: {config.action}",
                details={"node_id": node.id, "action": config.action}
            )

        if action == ActionType.UPDATE_STATUS and not config.status:
            raise DefinitionError(
                f"Action node '{node.id}' needs a status for UPDATE_STATUS",
                details={"node_id": node.id}
            )

        request_id = context.get("requestId")
        if not request_id:
            raise ActionExecutionError(
                f"Request ID is required for {action.value}",
                details={"node_id": node.id, "action": action.value}
            )

        logger.info(
            f"Executing action {action.value} for request {request_id}",
            extra={"execution_id": execution.execution_id, "node_id": node.id}
        )

        try:
            updates = self._dispatch(action, request_id, config)
        except DomainError:
            raise
        except Exception as e:
            raise ActionExecutionError(
                f"{action.value} failed for request {request_id}: {e}",
                details={"node_id": node.id, "action": action.value, "request_id": request_id}
            ) from e

        return NodeResult(
            next_node_id=node.next,
            context_updates=updates or None,
            details={"action": action.value, "request_id": request_id}
        )

    def _dispatch(self, action: ActionType, request_id: str, config) -> Optional[Dict[str, Any]]:
        if action == ActionType.AUTO_APPROVE:
            return self.operations.approve_request(request_id)
        if action == ActionType.AUTO_REJECT:
            return self.operations.reject_request(request_id, config.reason)
        if action == ActionType.FULFILL_REQUEST:
            return self.operations.fulfill_request(request_id)
        if action == ActionType.CREATE_PR:
            return self.operations.create_purchase_requisition(request_id, config.vendor_id)
        if action == ActionType.RESERVE_STOCK:
            return self.operations.reserve_stock(request_id)
        return self.operations.update_request_status(request_id, config.status)
