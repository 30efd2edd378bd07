"""History Writer - Append-only execution history"""
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from ..domain.models import WorkflowHistory
from ..domain.enums import HistoryEventType, NodeType
from ..repositories.base import HistoryStore
from ..utils.idgen import generate_history_id
from ..utils.logger import get_correlation_id
from ..utils.time import utc_now


class HistoryWriter:
    """
    Write history entries (append-only)

    Every state change of an execution and every processed node produces
    one entry. The current correlation id is attached automatically.
    """

    def __init__(self, repo: HistoryStore, clock: Callable[[], datetime] = utc_now):
        self.repo = repo
        self.clock = clock

    def write_event(
        self,
        execution_id: str,
        event_type: HistoryEventType,
        node_id: Optional[str] = None,
        node_type: Optional[NodeType] = None,
        actor_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> WorkflowHistory:
        """Write a single history entry"""
        entry = WorkflowHistory(
            history_id=generate_history_id(),
            execution_id=execution_id,
            node_id=node_id,
            node_type=node_type,
            event_type=event_type,
            actor_id=actor_id,
            details=details or {},
            timestamp=self.clock(),
            correlation_id=get_correlation_id()
        )
        return self.repo.append(entry)

    def write_started(self, execution_id: str, workflow_id: str, trigger_type: Optional[str]) -> WorkflowHistory:
        return self.write_event(
            execution_id,
            HistoryEventType.EXECUTION_STARTED,
            details={"workflow_id": workflow_id, "trigger_type": trigger_type}
        )

    def write_node_processed(
        self,
        execution_id: str,
        node_id: str,
        node_type: NodeType,
        next_node_id: Optional[str],
        details: Optional[Dict[str, Any]] = None
    ) -> WorkflowHistory:
        return self.write_event(
            execution_id,
            HistoryEventType.NODE_PROCESSED,
            node_id=node_id,
            node_type=node_type,
            details={**(details or {}), "next_node_id": next_node_id}
        )

    def write_paused(
        self,
        execution_id: str,
        node_id: str,
        node_type: NodeType,
        resume_at: Optional[datetime]
    ) -> WorkflowHistory:
        return self.write_event(
            execution_id,
            HistoryEventType.EXECUTION_PAUSED,
            node_id=node_id,
            node_type=node_type,
            details={"resume_at": resume_at.isoformat() if resume_at else None}
        )

    def write_resumed(
        self,
        execution_id: str,
        node_id: Optional[str],
        actor_id: Optional[str],
        payload: Optional[Dict[str, Any]]
    ) -> WorkflowHistory:
        return self.write_event(
            execution_id,
            HistoryEventType.EXECUTION_RESUMED,
            node_id=node_id,
            actor_id=actor_id,
            details={"payload_keys": sorted((payload or {}).keys())}
        )

    def write_completed(self, execution_id: str, node_id: Optional[str]) -> WorkflowHistory:
        return self.write_event(execution_id, HistoryEventType.EXECUTION_COMPLETED, node_id=node_id)

    def write_failed(
        self,
        execution_id: str,
        node_id: Optional[str],
        error_code: str,
        message: str
    ) -> WorkflowHistory:
        return self.write_event(
            execution_id,
            HistoryEventType.EXECUTION_FAILED,
            node_id=node_id,
            details={"error_code": error_code, "error": message}
        )

    def write_cancelled(
        self,
        execution_id: str,
        node_id: Optional[str],
        actor_id: Optional[str],
        reason: Optional[str]
    ) -> WorkflowHistory:
        return self.write_event(
            execution_id,
            HistoryEventType.EXECUTION_CANCELLED,
            node_id=node_id,
            actor_id=actor_id,
            details={"reason": reason}
        )

    def write_task_event(
        self,
        execution_id: str,
        event_type: HistoryEventType,
        task_id: str,
        node_id: str,
        actor_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> WorkflowHistory:
        """Write a task completed / escalated / expired entry"""
        return self.write_event(
            execution_id,
            event_type,
            node_id=node_id,
            node_type=NodeType.ASSIGNMENT,
            actor_id=actor_id,
            details={"task_id": task_id, **(details or {})}
        )
