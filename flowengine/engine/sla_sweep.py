"""SLA Sweep - Periodic handling of expired tasks and elapsed delays"""
from datetime import datetime
from typing import Optional

from .engine import WorkflowEngine
from .processors.assignment import AssignmentProcessor, parse_target
from ..domain.enums import ExecutionStatus, HistoryEventType, NodeType, TaskStatus
from ..domain.errors import AssignmentResolutionError, DefinitionError, DomainError, ExecutionLockedError
from ..domain.models import Execution, SweepReport, WorkflowTask
from ..utils.idgen import generate_task_id
from ..utils.time import ensure_utc, format_iso
from ..utils.logger import get_logger

logger = get_logger(__name__)


class SlaSweep:
    """
    One pass over overdue work

    For each pending task past its SLA deadline:
    - execution no longer waiting on it: mark expired only
    - escalateTo set (and not already an escalation): mark escalated and
      open a new pending task for the escalation target with a fresh SLA
      window
    - otherwise: mark expired and resume the execution with
      {"sla_expired": true, "expiredTask": {...}}

    Then every PAUSED execution waiting on a delay node whose resume_at has
    passed is resumed with {"delayElapsed": {...}}.

    Task claims are compare-and-set on task status and resumes run under the
    execution lock, so overlapping sweeps never act twice. Work whose
    execution is locked is left for the next run.
    """

    def __init__(self, engine: WorkflowEngine):
        self.engine = engine
        self.tasks = engine.tasks
        self.executions = engine.executions
        self.history = engine.history

    def run(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or self.engine.clock()
        report = SweepReport()

        for task in self.tasks.find_expired_tasks(now):
            try:
                self._handle_expired_task(task, now, report)
            except ExecutionLockedError:
                logger.info(
                    f"Execution {task.execution_id} busy, task {task.task_id} left for next sweep",
                    extra={"execution_id": task.execution_id, "task_id": task.task_id}
                )
                report.skipped.append(task.task_id)
            except DomainError as e:
                logger.error(
                    f"SLA handling failed for task {task.task_id}: {e.message}",
                    extra={"execution_id": task.execution_id, "task_id": task.task_id, "error_code": e.error_code}
                )
                report.skipped.append(task.task_id)

        for execution in self.executions.find_due_delays(now):
            try:
                self._resume_delay(execution, now, report)
            except ExecutionLockedError:
                report.skipped.append(execution.execution_id)
            except DomainError as e:
                logger.error(
                    f"Delay resume failed for execution {execution.execution_id}: {e.message}",
                    extra={"execution_id": execution.execution_id, "error_code": e.error_code}
                )
                report.skipped.append(execution.execution_id)

        if report.escalated or report.expired or report.resumed:
            logger.info(
                f"SLA sweep: {len(report.escalated)} escalated, {len(report.expired)} expired, "
                f"{len(report.resumed)} resumed, {len(report.skipped)} skipped"
            )
        return report

    # ------------------------------------------------------------------

    def _handle_expired_task(self, task: WorkflowTask, now: datetime, report: SweepReport) -> None:
        execution = self.executions.get_execution(task.execution_id)
        if not self._is_waiting_on(execution, task):
            self._expire_only(task, report)
            return

        if task.escalate_to and not task.escalated_from_task_id:
            if self._escalate(task, now, report):
                return

        with self.engine.execution_lock(task.execution_id):
            execution = self.executions.get_execution(task.execution_id)
            if not self._is_waiting_on(execution, task):
                self._expire_only(task, report)
                return

            claimed = self.tasks.transition_task(task.task_id, TaskStatus.PENDING, TaskStatus.EXPIRED)
            if claimed is None:
                return

            self.history.write_task_event(
                task.execution_id,
                HistoryEventType.TASK_EXPIRED,
                task_id=task.task_id,
                node_id=task.node_id,
                details={"sla_deadline": format_iso(task.sla_deadline) if task.sla_deadline else None}
            )
            report.expired.append(task.task_id)

            self.engine.continue_paused(execution, None, {
                "sla_expired": True,
                "expiredTask": {
                    "taskId": task.task_id,
                    "nodeId": task.node_id,
                    "assignTo": task.assign_to,
                    "slaDeadline": format_iso(task.sla_deadline) if task.sla_deadline else None
                }
            })
            report.resumed.append(task.execution_id)

    def _is_waiting_on(self, execution: Optional[Execution], task: WorkflowTask) -> bool:
        return (
            execution is not None
            and execution.status == ExecutionStatus.PAUSED
            and execution.current_node_id == task.node_id
        )

    def _expire_only(self, task: WorkflowTask, report: SweepReport) -> None:
        if self.tasks.transition_task(task.task_id, TaskStatus.PENDING, TaskStatus.EXPIRED) is None:
            return
        self.history.write_task_event(
            task.execution_id,
            HistoryEventType.TASK_EXPIRED,
            task_id=task.task_id,
            node_id=task.node_id,
            details={"reason": "execution_not_waiting"}
        )
        report.expired.append(task.task_id)

    def _escalate(self, task: WorkflowTask, now: datetime, report: SweepReport) -> bool:
        """Hand the task to its escalation target; False if the target is unusable"""
        try:
            target_type, target_value = parse_target(task.escalate_to, task.node_id)
        except DefinitionError as e:
            logger.warning(
                f"Cannot escalate task {task.task_id}: {e.message}",
                extra={"task_id": task.task_id, "execution_id": task.execution_id}
            )
            return False

        claimed = self.tasks.transition_task(
            task.task_id, TaskStatus.PENDING, TaskStatus.ESCALATED, escalated_at=now
        )
        if claimed is None:
            # Another sweep got there first
            return True

        assignee_id = None
        execution = self.executions.get_execution(task.execution_id)
        assigner = self.engine.registry.get(NodeType.ASSIGNMENT)
        if isinstance(assigner, AssignmentProcessor) and execution is not None:
            try:
                assignee_id = assigner.resolve_assignee(target_type, target_value, execution.context)
            except AssignmentResolutionError as e:
                logger.warning(
                    f"Escalation target unresolved: {e.message}",
                    extra={"task_id": task.task_id, "execution_id": task.execution_id}
                )

        sla_deadline = None
        if task.sla_deadline is not None:
            window = ensure_utc(task.sla_deadline) - ensure_utc(task.created_at)
            sla_deadline = now + window

        escalated = self.tasks.upsert_task(WorkflowTask(
            task_id=generate_task_id(),
            execution_id=task.execution_id,
            node_id=task.node_id,
            assign_to=task.escalate_to,
            target_type=target_type.value,
            target_value=target_value,
            assignee_id=assignee_id,
            task_type=task.task_type,
            allowed_actions=list(task.allowed_actions),
            sla_deadline=sla_deadline,
            escalate_to=None,
            status=TaskStatus.PENDING,
            escalated_from_task_id=task.task_id,
            created_at=now
        ))

        self.history.write_task_event(
            task.execution_id,
            HistoryEventType.TASK_ESCALATED,
            task_id=task.task_id,
            node_id=task.node_id,
            details={"escalated_to": task.escalate_to, "new_task_id": escalated.task_id}
        )
        logger.info(
            f"Escalated task {task.task_id} to {task.escalate_to}",
            extra={"task_id": task.task_id, "execution_id": task.execution_id}
        )
        report.escalated.append(task.task_id)
        return True

    def _resume_delay(self, execution: Execution, now: datetime, report: SweepReport) -> None:
        with self.engine.execution_lock(execution.execution_id):
            current = self.executions.get_execution(execution.execution_id)
            if (
                current is None
                or current.status != ExecutionStatus.PAUSED
                or current.waiting_on != NodeType.DELAY
                or current.resume_at is None
                or ensure_utc(current.resume_at) > ensure_utc(now)
            ):
                return

            self.engine.continue_paused(current, None, {
                "delayElapsed": {
                    "nodeId": current.current_node_id,
                    "resumeAt": format_iso(current.resume_at)
                }
            })
            report.resumed.append(current.execution_id)
