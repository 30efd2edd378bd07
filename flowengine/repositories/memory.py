"""In-memory implementations of the persistence contracts

Useful for tests or when no database is configured. Data is not persisted
across process restarts. Models are copied on the way in and out so callers
never share state with the store.
"""
import threading
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from ..domain.enums import ExecutionStatus, NodeType, TaskStatus
from ..domain.errors import AlreadyExistsError
from ..domain.models import Execution, WorkflowDefinition, WorkflowHistory, WorkflowTask
from ..utils.time import ensure_utc, is_overdue, utc_now


class InMemoryWorkflowRepository:
    """Definition store backed by a dict"""

    def __init__(self) -> None:
        self._definitions: Dict[str, WorkflowDefinition] = {}

    def get_definition(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        return self._definitions.get(workflow_id)

    def save_definition(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        now = utc_now()
        definition = definition.model_copy(update={
            "created_at": definition.created_at or now,
            "updated_at": now
        })
        self._definitions[definition.workflow_id] = definition
        return definition

    def list_active_definitions(self, trigger_type: Optional[str] = None) -> List[WorkflowDefinition]:
        definitions = [
            d for d in self._definitions.values()
            if d.is_active and (trigger_type is None or d.trigger_type == trigger_type)
        ]
        return sorted(definitions, key=lambda d: (not d.is_default, d.workflow_id))


class InMemoryExecutionRepository:
    """Execution store with a lock table guarded by a mutex"""

    def __init__(self) -> None:
        self._executions: Dict[str, Execution] = {}
        self._locks: Dict[str, Tuple[str, datetime]] = {}
        self._mutex = threading.Lock()

    def create_execution(self, execution: Execution) -> Execution:
        with self._mutex:
            if execution.execution_id in self._executions:
                raise AlreadyExistsError(f"Execution {execution.execution_id} already exists")
            self._executions[execution.execution_id] = execution.model_copy(deep=True)
        return execution

    def get_execution(self, execution_id: str) -> Optional[Execution]:
        with self._mutex:
            stored = self._executions.get(execution_id)
            return stored.model_copy(deep=True) if stored else None

    def save_execution(self, execution: Execution) -> bool:
        with self._mutex:
            stored = self._executions.get(execution.execution_id)
            if stored is None or stored.status == ExecutionStatus.CANCELLED:
                return False
            self._executions[execution.execution_id] = execution.model_copy(deep=True)
            return True

    def cancel_execution(
        self,
        execution_id: str,
        now: datetime,
        reason: Optional[str] = None
    ) -> Optional[Execution]:
        with self._mutex:
            stored = self._executions.get(execution_id)
            if stored is None or stored.status not in (ExecutionStatus.RUNNING, ExecutionStatus.PAUSED):
                return None
            cancelled = stored.model_copy(deep=True, update={
                "status": ExecutionStatus.CANCELLED,
                "error_message": reason,
                "resume_at": None,
                "completed_at": now,
                "last_activity_at": now
            })
            self._executions[execution_id] = cancelled
            return cancelled.model_copy(deep=True)

    def acquire_lock(self, execution_id: str, lock_by: str, lock_duration_seconds: int) -> bool:
        now = utc_now()
        with self._mutex:
            if execution_id not in self._executions:
                return False
            held = self._locks.get(execution_id)
            if held is not None and held[1] > now:
                return False
            self._locks[execution_id] = (lock_by, now + timedelta(seconds=lock_duration_seconds))
            return True

    def release_lock(self, execution_id: str, lock_by: str) -> bool:
        with self._mutex:
            held = self._locks.get(execution_id)
            if held is None or held[0] != lock_by:
                return False
            del self._locks[execution_id]
            return True

    def find_due_delays(self, now: datetime) -> List[Execution]:
        with self._mutex:
            due = [
                e.model_copy(deep=True) for e in self._executions.values()
                if e.status == ExecutionStatus.PAUSED
                and e.waiting_on == NodeType.DELAY
                and e.resume_at is not None
                and ensure_utc(e.resume_at) <= ensure_utc(now)
            ]
        return sorted(due, key=lambda e: e.resume_at)


class InMemoryTaskRepository:
    """Task store; enforces one pending task per (execution, node)"""

    def __init__(self) -> None:
        self._tasks: Dict[str, WorkflowTask] = {}
        self._mutex = threading.Lock()

    def upsert_task(self, task: WorkflowTask) -> WorkflowTask:
        with self._mutex:
            for existing in self._tasks.values():
                if (
                    existing.execution_id == task.execution_id
                    and existing.node_id == task.node_id
                    and existing.status == TaskStatus.PENDING
                ):
                    updated = task.model_copy(deep=True, update={
                        "task_id": existing.task_id,
                        "created_at": existing.created_at,
                        "status": TaskStatus.PENDING
                    })
                    self._tasks[existing.task_id] = updated
                    return updated.model_copy(deep=True)

            stored = task.model_copy(deep=True, update={"status": TaskStatus.PENDING})
            self._tasks[task.task_id] = stored
            return stored.model_copy(deep=True)

    def get_task(self, task_id: str) -> Optional[WorkflowTask]:
        with self._mutex:
            stored = self._tasks.get(task_id)
            return stored.model_copy(deep=True) if stored else None

    def transition_task(
        self,
        task_id: str,
        from_status: TaskStatus,
        to_status: TaskStatus,
        **fields: Any
    ) -> Optional[WorkflowTask]:
        with self._mutex:
            stored = self._tasks.get(task_id)
            if stored is None or stored.status != from_status:
                return None
            updated = stored.model_copy(deep=True, update={**fields, "status": to_status})
            self._tasks[task_id] = updated
            return updated.model_copy(deep=True)

    def find_expired_tasks(self, now: datetime) -> List[WorkflowTask]:
        with self._mutex:
            expired = [
                t.model_copy(deep=True) for t in self._tasks.values()
                if t.status == TaskStatus.PENDING and is_overdue(t.sla_deadline, now)
            ]
        return sorted(expired, key=lambda t: t.sla_deadline)

    def get_pending_tasks(self, execution_id: str, node_id: Optional[str] = None) -> List[WorkflowTask]:
        return [
            t for t in self.get_tasks_for_execution(execution_id)
            if t.status == TaskStatus.PENDING and (node_id is None or t.node_id == node_id)
        ]

    def get_tasks_for_execution(self, execution_id: str) -> List[WorkflowTask]:
        with self._mutex:
            # dicts keep insertion order, which is creation order here
            return [t.model_copy(deep=True) for t in self._tasks.values() if t.execution_id == execution_id]


class InMemoryHistoryRepository:
    """Append-only list of history entries"""

    def __init__(self) -> None:
        self._entries: List[WorkflowHistory] = []
        self._mutex = threading.Lock()

    def append(self, entry: WorkflowHistory) -> WorkflowHistory:
        with self._mutex:
            self._entries.append(entry.model_copy(deep=True))
        return entry

    def get_for_execution(self, execution_id: str) -> List[WorkflowHistory]:
        with self._mutex:
            return [e.model_copy(deep=True) for e in self._entries if e.execution_id == execution_id]
