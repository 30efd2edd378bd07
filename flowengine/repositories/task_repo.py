"""Task Repository - Data access for workflow tasks"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pymongo import ASCENDING, ReturnDocument
from pymongo.collection import Collection

from .mongo_client import get_collection, to_document
from ..domain.models import WorkflowTask
from ..domain.enums import TaskStatus
from ..utils.logger import get_logger

logger = get_logger(__name__)


class TaskRepository:
    """Repository for human tasks created by assignment nodes"""

    def __init__(self):
        self._tasks: Collection = get_collection("workflow_tasks")

    def upsert_task(self, task: WorkflowTask) -> WorkflowTask:
        """
        Create a task, reusing the pending one for (execution, node) if present

        Re-entering an assignment node therefore never opens a second
        pending task.
        """
        doc = to_document(task)
        insert_only = {"task_id": doc.pop("task_id"), "created_at": doc.pop("created_at")}
        doc.pop("status", None)

        result = self._tasks.find_one_and_update(
            {
                "execution_id": task.execution_id,
                "node_id": task.node_id,
                "status": TaskStatus.PENDING.value
            },
            {
                "$set": doc,
                "$setOnInsert": {**insert_only, "status": TaskStatus.PENDING.value}
            },
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        result.pop("_id", None)
        saved = WorkflowTask.model_validate(result)
        logger.info(
            f"Upserted task {saved.task_id} for node {saved.node_id}",
            extra={"task_id": saved.task_id, "execution_id": saved.execution_id, "node_id": saved.node_id}
        )
        return saved

    def get_task(self, task_id: str) -> Optional[WorkflowTask]:
        """Get task by ID"""
        doc = self._tasks.find_one({"task_id": task_id})
        if doc is None:
            return None
        doc.pop("_id", None)
        return WorkflowTask.model_validate(doc)

    def transition_task(
        self,
        task_id: str,
        from_status: TaskStatus,
        to_status: TaskStatus,
        **fields: Any
    ) -> Optional[WorkflowTask]:
        """Compare-and-set on status; None when another writer got there first"""
        updates: Dict[str, Any] = {"status": to_status.value}
        for key, value in fields.items():
            updates[key] = value.value if isinstance(value, Enum) else value

        result = self._tasks.find_one_and_update(
            {"task_id": task_id, "status": from_status.value},
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            return None
        result.pop("_id", None)
        return WorkflowTask.model_validate(result)

    def find_expired_tasks(self, now: datetime) -> List[WorkflowTask]:
        """Pending tasks past their SLA deadline"""
        cursor = self._tasks.find({
            "status": TaskStatus.PENDING.value,
            "sla_deadline": {"$ne": None, "$lt": now}
        }).sort("sla_deadline", ASCENDING)
        return self._to_models(cursor)

    def get_pending_tasks(self, execution_id: str, node_id: Optional[str] = None) -> List[WorkflowTask]:
        """Pending tasks of an execution"""
        query: Dict[str, Any] = {"execution_id": execution_id, "status": TaskStatus.PENDING.value}
        if node_id is not None:
            query["node_id"] = node_id
        return self._to_models(self._tasks.find(query).sort("created_at", ASCENDING))

    def get_tasks_for_execution(self, execution_id: str) -> List[WorkflowTask]:
        """All tasks of an execution"""
        cursor = self._tasks.find({"execution_id": execution_id}).sort("created_at", ASCENDING)
        return self._to_models(cursor)

    def _to_models(self, cursor) -> List[WorkflowTask]:
        tasks = []
        for doc in cursor:
            doc.pop("_id", None)
            tasks.append(WorkflowTask.model_validate(doc))
        return tasks
