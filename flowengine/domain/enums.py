"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class ExecutionStatus(str, Enum):
    """Lifecycle status of a workflow execution"""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED)


class NodeType(str, Enum):
    """Types of workflow nodes"""
    DECISION = "decision"
    ACTION = "action"
    ASSIGNMENT = "assignment"
    NOTIFICATION = "notification"
    DELAY = "delay"
    INTEGRATION = "integration"


class ActionType(str, Enum):
    """Automated actions an action node can perform"""
    AUTO_APPROVE = "AUTO_APPROVE"
    AUTO_REJECT = "AUTO_REJECT"
    FULFILL_REQUEST = "FULFILL_REQUEST"
    CREATE_PR = "CREATE_PR"
    RESERVE_STOCK = "RESERVE_STOCK"
    UPDATE_STATUS = "UPDATE_STATUS"


class NotificationChannel(str, Enum):
    """Channels a notification node can send on"""
    EMAIL = "email"
    IN_APP = "in_app"
    SMS = "sms"
    SLACK = "slack"


class DelayType(str, Enum):
    """How a delay node computes its wake-up time"""
    HOURS = "hours"
    DAYS = "days"
    UNTIL = "until"


class AssignmentTargetType(str, Enum):
    """Prefix of an assignment target (type:value)"""
    USER = "user"
    ROLE = "role"
    DYNAMIC = "dynamic"


class TaskStatus(str, Enum):
    """Workflow task status"""
    PENDING = "pending"
    COMPLETED = "completed"
    ESCALATED = "escalated"
    EXPIRED = "expired"


class TaskType(str, Enum):
    """Kinds of human task an assignment node creates"""
    APPROVE_REQUEST = "approve_request"
    REVIEW_REQUEST = "review_request"
    FULFILL_REQUEST = "fulfill_request"
    CUSTOM = "custom"


class TriggerType(str, Enum):
    """Events that can start a workflow"""
    REQUEST_SUBMITTED = "request_submitted"
    PR_CREATED = "pr_created"
    STOCK_LOW = "stock_low"
    MANUAL = "manual"


class HistoryEventType(str, Enum):
    """Types of workflow history entries"""
    EXECUTION_STARTED = "EXECUTION_STARTED"
    NODE_PROCESSED = "NODE_PROCESSED"
    EXECUTION_PAUSED = "EXECUTION_PAUSED"
    EXECUTION_RESUMED = "EXECUTION_RESUMED"
    EXECUTION_COMPLETED = "EXECUTION_COMPLETED"
    EXECUTION_FAILED = "EXECUTION_FAILED"
    EXECUTION_CANCELLED = "EXECUTION_CANCELLED"
    TASK_COMPLETED = "TASK_COMPLETED"
    TASK_ESCALATED = "TASK_ESCALATED"
    TASK_EXPIRED = "TASK_EXPIRED"
