"""
Workflow Engine - The Brain of the System

This module contains the WorkflowEngine class that drives executions of
workflow definitions through their node graph.

=============================================================================
MODULE STRUCTURE
=============================================================================

1. INITIALIZATION
   - Constructor with store, collaborator and registry dependencies

2. LIFECYCLE OPERATIONS
   - start_execution: Create an execution and run it until it pauses or ends
   - resume_execution: Continue a PAUSED execution with an action payload
   - complete_task: Complete a human task and resume its execution
   - cancel_execution: Cancel a RUNNING or PAUSED execution

3. QUERIES
   - get_execution_status, get_execution_history, get_task, get_tasks_for_execution

4. STEP LOOP
   - continue_paused: Resume body, for callers already holding the lock
   - _run: Dispatch nodes until pause, completion, failure or cancellation
   - _fail: Record a fatal error on the execution

5. HELPERS
   - execution_lock: Lease lock context manager

=============================================================================
CONCURRENCY
=============================================================================

Every start/resume holds the execution's lease lock for the whole step
loop; a second invocation fails fast with ExecutionLockedError. Cancel does
not take the lock: saves never overwrite a CANCELLED record, so a running
loop stops at its next step boundary.

=============================================================================
"""
import copy
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional
import httpx

from ..config.settings import settings
from ..domain.models import (
    Execution, ExecutionStatusView, NodeResult, WorkflowDefinition, WorkflowHistory, WorkflowTask
)
from ..domain.enums import ExecutionStatus, HistoryEventType, NodeType, TaskStatus
from ..domain.errors import (
    DefinitionError, DomainError, ExecutionLockedError, ExecutionNotFoundError,
    InvalidStateError, StepBudgetExceededError, TaskNotFoundError, ValidationError,
    WorkflowNotFoundError
)
from ..repositories.base import DefinitionStore, ExecutionStore, HistoryStore, TaskStore
from ..repositories.workflow_repo import WorkflowRepository
from ..repositories.execution_repo import ExecutionRepository
from ..repositories.task_repo import TaskRepository
from ..repositories.history_repo import HistoryRepository
from ..services.directory_service import DirectoryLookup, DirectoryService
from ..services.domain_operations import DomainOperations, RequestOperations
from ..services.notification_service import NotificationSender, NotificationService
from .condition_evaluator import ConditionEvaluator
from .history_writer import HistoryWriter
from .processors import NodeProcessorRegistry, build_registry
from ..utils.idgen import generate_execution_id, generate_lock_owner
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class WorkflowEngine:
    """
    The Workflow Engine - Central orchestrator for workflow executions

    Responsibilities:
    - Create executions from active workflow definitions
    - Run the step loop, persisting after every node
    - Pause on assignment/delay nodes and resume on external events
    - Write the append-only execution history
    """

    def __init__(
        self,
        definitions: Optional[DefinitionStore] = None,
        executions: Optional[ExecutionStore] = None,
        tasks: Optional[TaskStore] = None,
        history: Optional[HistoryStore] = None,
        registry: Optional[NodeProcessorRegistry] = None,
        operations: Optional[DomainOperations] = None,
        directory: Optional[DirectoryLookup] = None,
        sender: Optional[NotificationSender] = None,
        evaluator: Optional[ConditionEvaluator] = None,
        clock: Callable[[], datetime] = utc_now,
        http_transport: Optional[httpx.BaseTransport] = None,
        max_steps: Optional[int] = None,
        lock_seconds: Optional[int] = None
    ):
        self.definitions = definitions or WorkflowRepository()
        self.executions = executions or ExecutionRepository()
        self.tasks = tasks or TaskRepository()
        self.history = HistoryWriter(history or HistoryRepository(), clock)
        self.clock = clock
        self.max_steps = max_steps or settings.max_steps_per_invocation
        self.lock_seconds = lock_seconds or settings.execution_lock_seconds

        self.registry = registry or build_registry(
            tasks=self.tasks,
            operations=operations or RequestOperations(),
            directory=directory or DirectoryService(),
            sender=sender or NotificationService(),
            evaluator=evaluator,
            clock=clock,
            http_transport=http_transport
        )

    # =========================================================================
    # LIFECYCLE OPERATIONS
    # =========================================================================

    def start_execution(
        self,
        workflow_id: str,
        trigger_context: Optional[Dict[str, Any]] = None,
        trigger_type: Optional[str] = None
    ) -> str:
        """
        Start a new execution and run it until it pauses or ends

        Args:
            workflow_id: Definition to execute
            trigger_context: Initial execution context
            trigger_type: Event that started the execution (defaults to the definition's)

        Returns:
            The execution id, whatever the resulting status

        Raises:
            WorkflowNotFoundError: Unknown definition
            InvalidStateError: Definition is inactive
        """
        definition = self.definitions.get_definition(workflow_id)
        if definition is None:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")
        if not definition.is_active:
            raise InvalidStateError(
                f"Workflow {workflow_id} is not active",
                details={"workflow_id": workflow_id}
            )

        now = self.clock()
        execution = Execution(
            execution_id=generate_execution_id(),
            workflow_id=workflow_id,
            workflow_version=definition.version,
            trigger_type=trigger_type or definition.trigger_type,
            status=ExecutionStatus.PENDING,
            current_node_id=definition.root_node_id,
            context=copy.deepcopy(trigger_context or {}),
            created_at=now,
            last_activity_at=now
        )
        self.executions.create_execution(execution)

        logger.info(
            f"Starting execution {execution.execution_id} of workflow {workflow_id}",
            extra={"execution_id": execution.execution_id, "workflow_id": workflow_id}
        )

        with self.execution_lock(execution.execution_id):
            execution.status = ExecutionStatus.RUNNING
            execution.started_at = now
            if self._save(execution):
                self.history.write_started(execution.execution_id, workflow_id, execution.trigger_type)
                self._run(execution, definition)

        return execution.execution_id

    def resume_execution(
        self,
        execution_id: str,
        actor_id: Optional[str] = None,
        action_payload: Optional[Dict[str, Any]] = None
    ) -> ExecutionStatusView:
        """
        Resume a paused execution

        Any status other than PAUSED makes this a no-op, so duplicate
        resume events are harmless.
        """
        execution = self._get_execution_or_raise(execution_id)
        if execution.status != ExecutionStatus.PAUSED:
            logger.info(
                f"Resume ignored: execution {execution_id} is {execution.status.value}",
                extra={"execution_id": execution_id, "status": execution.status.value}
            )
            return self._status_view(execution)

        with self.execution_lock(execution_id):
            execution = self._get_execution_or_raise(execution_id)
            if execution.status == ExecutionStatus.PAUSED:
                self.continue_paused(execution, actor_id, action_payload or {})

        return self.get_execution_status(execution_id)

    def complete_task(
        self,
        task_id: str,
        actor_id: Optional[str],
        action: str,
        notes: Optional[str] = None
    ) -> ExecutionStatusView:
        """
        Complete a pending task and resume its execution

        The actor's decision reaches the context as lastUserAction.

        Raises:
            TaskNotFoundError: Unknown task
            InvalidStateError: Task is no longer pending or its execution is not waiting on it
            ValidationError: Action not in the task's allowed actions
        """
        task = self.get_task(task_id)
        self._check_task_actionable(task, action)

        with self.execution_lock(task.execution_id):
            execution = self._get_execution_or_raise(task.execution_id)
            if execution.status != ExecutionStatus.PAUSED or execution.current_node_id != task.node_id:
                raise InvalidStateError(
                    f"Execution {execution.execution_id} is not waiting on task {task_id}",
                    details={"execution_status": execution.status.value, "current_node_id": execution.current_node_id}
                )

            now = self.clock()
            completed = self.tasks.transition_task(
                task_id,
                TaskStatus.PENDING,
                TaskStatus.COMPLETED,
                completed_by=actor_id,
                completed_at=now,
                action_taken=action,
                action_notes=notes
            )
            if completed is None:
                raise InvalidStateError(f"Task {task_id} is no longer pending")

            self.history.write_task_event(
                execution.execution_id,
                HistoryEventType.TASK_COMPLETED,
                task_id=task_id,
                node_id=task.node_id,
                actor_id=actor_id,
                details={"action": action, "notes": notes}
            )
            logger.info(
                f"Task {task_id} completed with '{action}'",
                extra={"execution_id": execution.execution_id, "task_id": task_id, "actor_id": actor_id}
            )

            self.continue_paused(execution, actor_id, {
                "lastUserAction": {
                    "actorId": actor_id,
                    "action": action,
                    "notes": notes,
                    "taskId": task_id
                }
            })

        return self.get_execution_status(task.execution_id)

    def cancel_execution(
        self,
        execution_id: str,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None
    ) -> ExecutionStatusView:
        """
        Cancel a RUNNING or PAUSED execution

        Raises:
            ExecutionNotFoundError: Unknown execution
            InvalidStateError: Execution already terminal (or not yet started)
        """
        now = self.clock()
        cancelled = self.executions.cancel_execution(execution_id, now, reason)
        if cancelled is None:
            execution = self._get_execution_or_raise(execution_id)
            raise InvalidStateError(
                f"Cannot cancel execution in status {execution.status.value}",
                details={"execution_id": execution_id, "status": execution.status.value}
            )

        for task in self.tasks.get_pending_tasks(execution_id):
            self.tasks.transition_task(task.task_id, TaskStatus.PENDING, TaskStatus.EXPIRED)

        self.history.write_cancelled(execution_id, cancelled.current_node_id, actor_id, reason)
        logger.info(
            f"Cancelled execution {execution_id}",
            extra={"execution_id": execution_id, "actor_id": actor_id}
        )
        return self._status_view(cancelled)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_execution(self, execution_id: str) -> Execution:
        """Full execution record"""
        return self._get_execution_or_raise(execution_id)

    def get_execution_status(self, execution_id: str) -> ExecutionStatusView:
        """Status, current node, context and resume time of an execution"""
        return self._status_view(self._get_execution_or_raise(execution_id))

    def get_execution_history(self, execution_id: str) -> List[WorkflowHistory]:
        self._get_execution_or_raise(execution_id)
        return self.history.repo.get_for_execution(execution_id)

    def get_task(self, task_id: str) -> WorkflowTask:
        task = self.tasks.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} not found")
        return task

    def get_tasks_for_execution(self, execution_id: str) -> List[WorkflowTask]:
        self._get_execution_or_raise(execution_id)
        return self.tasks.get_tasks_for_execution(execution_id)

    # =========================================================================
    # STEP LOOP
    # =========================================================================

    def continue_paused(
        self,
        execution: Execution,
        actor_id: Optional[str],
        payload: Dict[str, Any]
    ) -> None:
        """Resume a PAUSED execution; caller holds the lock"""
        definition = self.definitions.get_definition(execution.workflow_id)
        if definition is None:
            raise WorkflowNotFoundError(f"Workflow {execution.workflow_id} not found")

        now = self.clock()
        paused_node_id = execution.current_node_id

        # The paused node is done once someone acts on it
        for task in self.tasks.get_pending_tasks(execution.execution_id, paused_node_id):
            action = payload.get("action") if isinstance(payload.get("action"), str) else None
            self.tasks.transition_task(
                task.task_id,
                TaskStatus.PENDING,
                TaskStatus.COMPLETED,
                completed_by=actor_id,
                completed_at=now,
                action_taken=action
            )

        execution.context.update(copy.deepcopy(payload))
        execution.resume_at = None
        execution.paused_at = None
        execution.waiting_on = None
        execution.last_activity_at = now

        next_node_id = execution.pending_node_id
        execution.pending_node_id = None

        self.history.write_resumed(execution.execution_id, paused_node_id, actor_id, payload)
        logger.info(
            f"Resuming execution {execution.execution_id}",
            extra={"execution_id": execution.execution_id, "node_id": paused_node_id, "actor_id": actor_id}
        )

        if next_node_id is None:
            execution.status = ExecutionStatus.COMPLETED
            execution.completed_at = now
            if self._save(execution):
                self.history.write_completed(execution.execution_id, paused_node_id)
            return

        execution.status = ExecutionStatus.RUNNING
        execution.current_node_id = next_node_id
        if self._save(execution):
            self._run(execution, definition)

    def _run(self, execution: Execution, definition: WorkflowDefinition) -> None:
        """
        Process nodes until the execution pauses, completes, fails or is cancelled

        Every transition is persisted before the next node runs.
        """
        steps = 0
        while True:
            node_id = execution.current_node_id
            try:
                if steps >= self.max_steps:
                    raise StepBudgetExceededError(
                        f"Execution visited more than {self.max_steps} nodes in one invocation",
                        details={"max_steps": self.max_steps, "node_id": node_id}
                    )

                node = definition.get_node(node_id)
                if node is None:
                    raise DefinitionError(
                        f"Node '{node_id}' not found in workflow {definition.workflow_id}",
                        details={"node_id": node_id}
                    )

                result: NodeResult = self.registry.process(
                    node, copy.deepcopy(execution.context), execution.model_copy()
                )

                if result.next_node_id is not None and not definition.has_node(result.next_node_id):
                    raise DefinitionError(
                        f"Node '{node_id}' points to missing node '{result.next_node_id}'",
                        details={"node_id": node_id, "next_node_id": result.next_node_id}
                    )
            except Exception as e:
                self._fail(execution, node_id, e)
                return

            steps += 1
            execution.steps_taken += 1
            if result.context_updates:
                execution.context.update(result.context_updates)

            node_type = NodeType(node.type)
            self.history.write_node_processed(
                execution.execution_id, node_id, node_type, result.next_node_id, result.details
            )

            now = self.clock()
            execution.last_activity_at = now

            if result.should_pause:
                execution.status = ExecutionStatus.PAUSED
                execution.paused_at = now
                execution.resume_at = result.resume_at
                execution.pending_node_id = result.next_node_id
                execution.waiting_on = node_type
                if self._save(execution):
                    self.history.write_paused(execution.execution_id, node_id, node_type, result.resume_at)
                    logger.info(
                        f"Execution {execution.execution_id} paused at {node_id}",
                        extra={"execution_id": execution.execution_id, "node_id": node_id}
                    )
                return

            if result.next_node_id is None:
                execution.status = ExecutionStatus.COMPLETED
                execution.completed_at = now
                if self._save(execution):
                    self.history.write_completed(execution.execution_id, node_id)
                    logger.info(
                        f"Execution {execution.execution_id} completed",
                        extra={"execution_id": execution.execution_id, "node_id": node_id}
                    )
                return

            execution.current_node_id = result.next_node_id
            if not self._save(execution):
                return

    def _fail(self, execution: Execution, node_id: Optional[str], error: Exception) -> None:
        if isinstance(error, DomainError):
            error_code, message = error.error_code, error.message
            logger.error(
                f"Execution {execution.execution_id} failed at {node_id}: {message}",
                extra={"execution_id": execution.execution_id, "node_id": node_id, "error_code": error_code}
            )
        else:
            error_code, message = "INTERNAL_ERROR", str(error) or type(error).__name__
            logger.exception(
                f"Execution {execution.execution_id} failed at {node_id}: {message}",
                extra={"execution_id": execution.execution_id, "node_id": node_id, "error_code": error_code}
            )

        now = self.clock()
        execution.status = ExecutionStatus.FAILED
        execution.current_node_id = node_id
        execution.error_message = message
        execution.error_code = error_code
        execution.resume_at = None
        execution.completed_at = now
        execution.last_activity_at = now
        if self._save(execution):
            self.history.write_failed(execution.execution_id, node_id, error_code, message)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _save(self, execution: Execution) -> bool:
        """Persist; False when the execution was cancelled meanwhile"""
        saved = self.executions.save_execution(execution)
        if not saved:
            logger.info(
                f"Execution {execution.execution_id} was cancelled, stopping",
                extra={"execution_id": execution.execution_id}
            )
        return saved

    @contextmanager
    def execution_lock(self, execution_id: str) -> Iterator[str]:
        """Hold the execution's lease lock, or raise ExecutionLockedError"""
        owner = generate_lock_owner()
        if not self.executions.acquire_lock(execution_id, owner, self.lock_seconds):
            raise ExecutionLockedError(
                f"Execution {execution_id} is being processed by another worker",
                details={"execution_id": execution_id}
            )
        try:
            yield owner
        finally:
            self.executions.release_lock(execution_id, owner)

    def _get_execution_or_raise(self, execution_id: str) -> Execution:
        execution = self.executions.get_execution(execution_id)
        if execution is None:
            raise ExecutionNotFoundError(f"Execution {execution_id} not found")
        return execution

    def _check_task_actionable(self, task: WorkflowTask, action: str) -> None:
        if task.status != TaskStatus.PENDING:
            raise InvalidStateError(
                f"Task {task.task_id} is {task.status.value}",
                details={"task_id": task.task_id, "status": task.status.value}
            )
        if task.allowed_actions and action not in task.allowed_actions:
            raise ValidationError(
                f"Action '{action}' is not allowed for task {task.task_id}",
                details={"allowed_actions": task.allowed_actions}
            )

    def _status_view(self, execution: Execution) -> ExecutionStatusView:
        return ExecutionStatusView(
            execution_id=execution.execution_id,
            workflow_id=execution.workflow_id,
            status=execution.status,
            current_node_id=execution.current_node_id,
            context=execution.context,
            resume_at=execution.resume_at,
            error_message=execution.error_message
        )
