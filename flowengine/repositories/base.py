"""Persistence contracts used by the engine

The engine only talks to these protocols; MongoDB and in-memory
implementations live next to this module.
"""
from datetime import datetime
from typing import Any, List, Optional, Protocol

from ..domain.enums import TaskStatus
from ..domain.models import Execution, WorkflowDefinition, WorkflowHistory, WorkflowTask


class DefinitionStore(Protocol):
    """Workflow definition storage"""

    def get_definition(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        """Return the definition or None"""

    def save_definition(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        """Insert or replace a definition"""

    def list_active_definitions(self, trigger_type: Optional[str] = None) -> List[WorkflowDefinition]:
        """Active definitions, optionally filtered by trigger type"""


class ExecutionStore(Protocol):
    """Execution storage with a per-execution lease lock"""

    def create_execution(self, execution: Execution) -> Execution:
        """Persist a new execution"""

    def get_execution(self, execution_id: str) -> Optional[Execution]:
        """Return the execution or None"""

    def save_execution(self, execution: Execution) -> bool:
        """
        Overwrite the stored execution state

        Returns False, without writing, when the stored record is CANCELLED.
        """

    def cancel_execution(self, execution_id: str, now: datetime, reason: Optional[str] = None) -> Optional[Execution]:
        """Atomically move RUNNING/PAUSED to CANCELLED; None if not in either state"""

    def acquire_lock(self, execution_id: str, lock_by: str, lock_duration_seconds: int) -> bool:
        """Take the lease if it is free or expired"""

    def release_lock(self, execution_id: str, lock_by: str) -> bool:
        """Release the lease if held by lock_by"""

    def find_due_delays(self, now: datetime) -> List[Execution]:
        """PAUSED executions waiting on a delay node whose resume_at has passed"""


class TaskStore(Protocol):
    """Workflow task storage"""

    def upsert_task(self, task: WorkflowTask) -> WorkflowTask:
        """Create the task, or update the pending task already open for (execution, node)"""

    def get_task(self, task_id: str) -> Optional[WorkflowTask]:
        """Return the task or None"""

    def transition_task(
        self,
        task_id: str,
        from_status: TaskStatus,
        to_status: TaskStatus,
        **fields: Any
    ) -> Optional[WorkflowTask]:
        """Compare-and-set the task status; None if it was not in from_status"""

    def find_expired_tasks(self, now: datetime) -> List[WorkflowTask]:
        """Pending tasks whose SLA deadline is before now"""

    def get_pending_tasks(self, execution_id: str, node_id: Optional[str] = None) -> List[WorkflowTask]:
        """Pending tasks of an execution, optionally for one node"""

    def get_tasks_for_execution(self, execution_id: str) -> List[WorkflowTask]:
        """All tasks of an execution, oldest first"""


class HistoryStore(Protocol):
    """Append-only execution history"""

    def append(self, entry: WorkflowHistory) -> WorkflowHistory:
        """Append one entry"""

    def get_for_execution(self, execution_id: str) -> List[WorkflowHistory]:
        """Entries for an execution in append order"""
