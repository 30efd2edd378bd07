"""Execution Repository - Data access for workflow executions"""
from datetime import datetime, timedelta
from typing import List, Optional
from pymongo import ASCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from .mongo_client import get_collection, to_document
from ..domain.models import Execution
from ..domain.enums import ExecutionStatus, NodeType
from ..domain.errors import AlreadyExistsError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class ExecutionRepository:
    """Repository for executions, including the per-execution lease lock"""

    def __init__(self):
        self._executions: Collection = get_collection("workflow_executions")

    def create_execution(self, execution: Execution) -> Execution:
        """Create a new execution"""
        doc = to_document(execution)
        doc["_id"] = execution.execution_id
        doc["locked_by"] = None
        doc["locked_until"] = None

        try:
            self._executions.insert_one(doc)
        except DuplicateKeyError:
            raise AlreadyExistsError(f"Execution {execution.execution_id} already exists")

        logger.info(
            f"Created execution: {execution.execution_id}",
            extra={"execution_id": execution.execution_id, "workflow_id": execution.workflow_id}
        )
        return execution

    def get_execution(self, execution_id: str) -> Optional[Execution]:
        """Get execution by ID"""
        doc = self._executions.find_one({"execution_id": execution_id})
        if doc is None:
            return None
        doc.pop("_id", None)
        return Execution.model_validate(doc)

    def save_execution(self, execution: Execution) -> bool:
        """
        Persist execution state

        The filter never matches a CANCELLED record, so a cancel issued while
        a step loop runs is not overwritten by that loop.
        """
        doc = to_document(execution)
        result = self._executions.update_one(
            {
                "execution_id": execution.execution_id,
                "status": {"$ne": ExecutionStatus.CANCELLED.value}
            },
            {"$set": doc}
        )
        if result.matched_count == 0:
            logger.info(
                f"Execution {execution.execution_id} not saved: cancelled or missing",
                extra={"execution_id": execution.execution_id}
            )
            return False
        return True

    def cancel_execution(
        self,
        execution_id: str,
        now: datetime,
        reason: Optional[str] = None
    ) -> Optional[Execution]:
        """Atomically cancel a RUNNING or PAUSED execution"""
        result = self._executions.find_one_and_update(
            {
                "execution_id": execution_id,
                "status": {"$in": [ExecutionStatus.RUNNING.value, ExecutionStatus.PAUSED.value]}
            },
            {
                "$set": {
                    "status": ExecutionStatus.CANCELLED.value,
                    "error_message": reason,
                    "resume_at": None,
                    "completed_at": now,
                    "last_activity_at": now
                }
            },
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            return None
        result.pop("_id", None)
        return Execution.model_validate(result)

    def acquire_lock(self, execution_id: str, lock_by: str, lock_duration_seconds: int) -> bool:
        """
        Try to take the lease on an execution

        Uses an atomic find-and-modify so only one process can run the
        execution's step loop at a time. An expired lease (crashed holder)
        can be taken over.
        """
        now = utc_now()
        lock_until = now + timedelta(seconds=lock_duration_seconds)

        result = self._executions.find_one_and_update(
            {
                "execution_id": execution_id,
                "$or": [
                    {"locked_until": {"$lte": now}},
                    {"locked_until": None}
                ]
            },
            {
                "$set": {
                    "locked_until": lock_until,
                    "locked_by": lock_by,
                    "lock_acquired_at": now
                }
            },
            return_document=ReturnDocument.BEFORE
        )

        if result:
            logger.debug(
                f"Lock acquired on execution {execution_id}",
                extra={"execution_id": execution_id}
            )
            return True

        logger.debug(
            f"Could not acquire lock on execution {execution_id} - already locked or not found",
            extra={"execution_id": execution_id}
        )
        return False

    def release_lock(self, execution_id: str, lock_by: str) -> bool:
        """Release the lease if we still own it"""
        result = self._executions.update_one(
            {"execution_id": execution_id, "locked_by": lock_by},
            {
                "$set": {"locked_until": None, "locked_by": None},
                "$unset": {"lock_acquired_at": ""}
            }
        )
        return result.modified_count > 0

    def find_due_delays(self, now: datetime) -> List[Execution]:
        """Paused executions whose delay has elapsed"""
        cursor = self._executions.find({
            "status": ExecutionStatus.PAUSED.value,
            "waiting_on": NodeType.DELAY.value,
            "resume_at": {"$lte": now}
        }).sort("resume_at", ASCENDING)

        executions = []
        for doc in cursor:
            doc.pop("_id", None)
            executions.append(Execution.model_validate(doc))
        return executions
