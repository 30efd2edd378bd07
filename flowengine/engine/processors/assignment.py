"""Assignment Processor - Human tasks with SLA deadlines"""
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from .base import NodeProcessor
from ...config.settings import settings
from ...domain.enums import AssignmentTargetType, NodeType, TaskStatus
from ...domain.errors import AssignmentResolutionError, DefinitionError
from ...domain.models import AssignmentNode, Execution, NodeResult, WorkflowTask
from ...repositories.base import TaskStore
from ...services.directory_service import DirectoryLookup
from ...utils.idgen import generate_task_id
from ...utils.time import add_hours, format_iso, utc_now
from ...utils.logger import get_logger

logger = get_logger(__name__)


def parse_target(target: str, node_id: Optional[str] = None) -> Tuple[AssignmentTargetType, str]:
    """Split 'type:value' into its parts"""
    target_type, sep, target_value = (target or "").partition(":")
    try:
        parsed = AssignmentTargetType(target_type.strip().lower())
    except ValueError:
        parsed = None
    if not sep or parsed is None or not target_value.strip():
        raise DefinitionError(
            f"Invalid assignment target '{target}' (expected user:, role: or dynamic:)",
            details={"node_id": node_id, "target": target}
        )
    return parsed, target_value.strip()


class AssignmentProcessor(NodeProcessor):
    """
    Create a task for a user, a role or a dynamically resolved assignee
    and pause until someone acts on it

    Dynamic targets:
        requestor     -> requestData.requestorId
        site_manager  -> holder of the site manager role at requestData.siteId

    Anything else (including requestor_manager) does not resolve. An
    unresolved assignee is logged and the task is created without one,
    unless strict_assignment_resolution is set.
    """

    node_type = NodeType.ASSIGNMENT

    def __init__(
        self,
        tasks: TaskStore,
        directory: DirectoryLookup,
        clock: Callable[[], datetime] = utc_now
    ):
        self.tasks = tasks
        self.directory = directory
        self.clock = clock

    def process(self, node: AssignmentNode, context: Dict[str, Any], execution: Execution) -> NodeResult:
        config = node.config
        target_type, target_value = parse_target(config.assign_to, node.id)

        details: Dict[str, Any] = {"assign_to": config.assign_to}
        try:
            assignee_id = self.resolve_assignee(target_type, target_value, context)
        except AssignmentResolutionError as e:
            if settings.strict_assignment_resolution:
                raise
            logger.warning(
                f"Assignment left unresolved: {e.message}",
                extra={"execution_id": execution.execution_id, "node_id": node.id}
            )
            assignee_id = None
            details["assignment_warning"] = e.message

        now = self.clock()
        sla_deadline = add_hours(now, config.sla_hours) if config.sla_hours is not None else None

        task = self.tasks.upsert_task(WorkflowTask(
            task_id=generate_task_id(),
            execution_id=execution.execution_id,
            node_id=node.id,
            assign_to=config.assign_to,
            target_type=target_type.value,
            target_value=target_value,
            assignee_id=assignee_id,
            task_type=config.task_type,
            allowed_actions=list(config.allowed_actions),
            sla_deadline=sla_deadline,
            escalate_to=config.escalate_to,
            status=TaskStatus.PENDING,
            created_at=now
        ))

        logger.info(
            f"Created task {task.task_id} for {config.assign_to}",
            extra={"execution_id": execution.execution_id, "node_id": node.id, "task_id": task.task_id}
        )

        details.update({
            "task_id": task.task_id,
            "assignee_id": assignee_id,
            "sla_deadline": format_iso(sla_deadline) if sla_deadline else None
        })
        return NodeResult(
            next_node_id=node.next,
            should_pause=True,
            resume_at=sla_deadline,
            details=details
        )

    def resolve_assignee(
        self,
        target_type: AssignmentTargetType,
        target_value: str,
        context: Dict[str, Any]
    ) -> Optional[str]:
        """
        Resolve the user a task is assigned to

        Role targets stay unassigned (any holder of the role may act).
        """
        if target_type == AssignmentTargetType.ROLE:
            return None

        if target_type == AssignmentTargetType.USER:
            if self.directory.resolve_user(target_value) is None:
                raise AssignmentResolutionError(
                    f"User '{target_value}' not found",
                    details={"target": f"user:{target_value}"}
                )
            return target_value

        request_data = context.get("requestData") or {}
        if not isinstance(request_data, dict):
            request_data = {}

        if target_value == "requestor":
            requestor_id = request_data.get("requestorId")
            if requestor_id:
                return str(requestor_id)
            raise AssignmentResolutionError(
                "No requestData.requestorId in context",
                details={"target": "dynamic:requestor"}
            )

        if target_value == "site_manager":
            site_id = request_data.get("siteId")
            if site_id:
                manager_id = self.directory.resolve_role_assignee(settings.site_manager_role, site_id)
                if manager_id:
                    return manager_id
            raise AssignmentResolutionError(
                f"No site manager found for site '{site_id}'",
                details={"target": "dynamic:site_manager", "site_id": site_id}
            )

        raise AssignmentResolutionError(
            f"Dynamic assignment '{target_value}' is not supported",
            details={"target": f"dynamic:{target_value}"}
        )
