"""ID Generation Utilities"""
import os
import socket
import uuid
from datetime import datetime, timezone
from typing import Optional


def generate_id(prefix: Optional[str] = None) -> str:
    """
    Generate a unique ID with optional prefix

    Args:
        prefix: Optional prefix for the ID (e.g., 'WFX', 'TSK')

    Returns:
        Unique ID string

    Examples:
        >>> generate_id('WFX')
        'WFX-a1b2c3d4e5f6'
        >>> generate_id()
        'a1b2c3d4e5f6'
    """
    unique_part = uuid.uuid4().hex[:12]

    if prefix:
        return f"{prefix}-{unique_part}"
    return unique_part


def generate_workflow_id() -> str:
    """Generate workflow definition ID"""
    return generate_id("WF")


def generate_execution_id() -> str:
    """Generate execution ID"""
    return generate_id("WFX")


def generate_task_id() -> str:
    """Generate workflow task ID"""
    return generate_id("TSK")


def generate_history_id() -> str:
    """Generate history entry ID"""
    return generate_id("HST")


def generate_notification_id() -> str:
    """Generate notification ID"""
    return generate_id("NTF")


def generate_lock_owner() -> str:
    """
    Generate an owner token for an execution lock

    Host and pid make stale locks traceable to the process that left them.
    """
    return f"{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:8]}"


def generate_correlation_id() -> str:
    """
    Generate a correlation ID for request tracing

    Returns:
        Correlation ID string with timestamp prefix
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    unique_part = uuid.uuid4().hex[:8]
    return f"COR-{timestamp}-{unique_part}"
