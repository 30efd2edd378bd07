"""
Service modules - External collaborators of the engine

WorkflowService sits on top of the engine and is imported from
flowengine.services.workflow_service directly.
"""
from .directory_service import DirectoryService
from .domain_operations import RequestOperations
from .notification_service import NotificationService

__all__ = [
    "DirectoryService",
    "RequestOperations",
    "NotificationService",
]
