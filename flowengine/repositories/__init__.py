"""Repository modules - Data access layer"""
from .mongo_client import get_database, get_collection
from .workflow_repo import WorkflowRepository
from .execution_repo import ExecutionRepository
from .task_repo import TaskRepository
from .history_repo import HistoryRepository

__all__ = [
    "get_database",
    "get_collection",
    "WorkflowRepository",
    "ExecutionRepository",
    "TaskRepository",
    "HistoryRepository",
]
