"""Domain Models - Pydantic schemas for all entities"""
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .enums import (
    ExecutionStatus, NodeType, TaskStatus, TaskType, TriggerType, HistoryEventType
)


# ============================================================================
# Workflow Definition (authoring document)
# ============================================================================

class DefinitionModel(BaseModel):
    """
    Base for definition documents

    Accepts both the camelCase keys of the authoring format (rootNodeId,
    trueNodeId, slaHours) and the snake_case keys used in storage.
    Definitions are immutable once loaded.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True
    )


class DecisionConfig(DefinitionModel):
    """Configuration for decision nodes (conditional branching)"""
    condition: str = Field(..., description="Condition expression")
    true_node_id: Optional[str] = Field(None, description="Node to run when the condition holds")
    false_node_id: Optional[str] = Field(None, description="Node to run otherwise")


class ActionConfig(DefinitionModel):
    """Configuration for action nodes (automated domain operations)"""
    action: str = Field(..., description="One of ActionType, case-insensitive")
    reason: Optional[str] = Field(None, description="For AUTO_REJECT")
    vendor_id: Optional[str] = Field(None, description="For CREATE_PR")
    status: Optional[str] = Field(None, description="For UPDATE_STATUS")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AssignmentConfig(DefinitionModel):
    """Configuration for assignment nodes (human tasks)"""
    assign_to: str = Field(..., description="user:<id>, role:<id> or dynamic:<name>")
    sla_hours: Optional[float] = Field(None, ge=0)
    escalate_to: Optional[str] = None
    allowed_actions: List[str] = Field(default_factory=list)
    task_type: str = TaskType.CUSTOM.value


class NotificationConfig(DefinitionModel):
    """Configuration for notification nodes"""
    channel: str = Field(..., description="email, in_app, sms or slack")
    send_to: str = Field(..., description="user:<id>, role:<id>, dynamic:requestor or a raw address")
    template: Optional[str] = None
    custom_message: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class DelayConfig(DefinitionModel):
    """Configuration for delay nodes"""
    delay_type: str = Field(..., description="hours, days or until")
    delay_value: Optional[float] = Field(None, ge=0)
    delay_until: Optional[str] = Field(None, description="ISO timestamp for 'until'")
    escalate_to: Optional[str] = None


class IntegrationConfig(DefinitionModel):
    """Configuration for integration nodes (outbound HTTP)"""
    method: str = "GET"
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[Any] = None
    response_key: str = Field(..., description="Context key the JSON response is stored under")
    timeout_ms: Optional[int] = Field(None, gt=0)


class BaseNode(DefinitionModel):
    """Fields shared by every node"""
    id: str = Field(..., description="Unique node ID within the definition")
    label: Optional[str] = None


class DecisionNode(BaseNode):
    type: Literal["decision"]
    config: DecisionConfig


class ActionNode(BaseNode):
    type: Literal["action"]
    config: ActionConfig
    next: Optional[str] = None


class AssignmentNode(BaseNode):
    type: Literal["assignment"]
    config: AssignmentConfig
    next: Optional[str] = None


class NotificationNode(BaseNode):
    type: Literal["notification"]
    config: NotificationConfig
    next: Optional[str] = None


class DelayNode(BaseNode):
    type: Literal["delay"]
    config: DelayConfig
    next: Optional[str] = None


class IntegrationNode(BaseNode):
    type: Literal["integration"]
    config: IntegrationConfig
    next: Optional[str] = None


NodeSpec = Annotated[
    Union[DecisionNode, ActionNode, AssignmentNode, NotificationNode, DelayNode, IntegrationNode],
    Field(discriminator="type")
]


class WorkflowDefinition(DefinitionModel):
    """Immutable (per version) workflow graph"""

    workflow_id: str = Field(..., alias="id")
    name: str = ""
    description: Optional[str] = None
    trigger_type: str = TriggerType.MANUAL.value
    trigger_conditions: Optional[str] = Field(
        None, description="Condition expression evaluated against the trigger context"
    )
    root_node_id: str
    nodes: Dict[str, NodeSpec] = Field(default_factory=dict)
    is_default: bool = False
    is_active: bool = True
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_nodes(cls, data: Any) -> Any:
        """Key list-shaped node collections by id and lower-case node types"""
        if not isinstance(data, dict):
            return data
        nodes = data.get("nodes")
        if nodes is None:
            return data

        if isinstance(nodes, list):
            items = [(node.get("id"), node) for node in nodes if isinstance(node, dict)]
        elif isinstance(nodes, dict):
            items = list(nodes.items())
        else:
            return data

        normalized: Dict[str, Any] = {}
        for key, node in items:
            if isinstance(node, dict):
                node = dict(node)
                node.setdefault("id", key)
                if node["id"] != key:
                    raise ValueError(f"Node key '{key}' does not match node id '{node['id']}'")
                if isinstance(node.get("type"), str):
                    node["type"] = node["type"].lower()
            normalized[key] = node

        data = dict(data)
        data["nodes"] = normalized
        return data

    def get_node(self, node_id: Optional[str]) -> Optional[Any]:
        """Look up a node by id"""
        if node_id is None:
            return None
        return self.nodes.get(node_id)

    def has_node(self, node_id: Optional[str]) -> bool:
        return node_id is not None and node_id in self.nodes


class ValidationIssue(BaseModel):
    """Problem found while validating a definition; warnings do not block a save"""
    node_id: Optional[str] = None
    code: str
    message: str
    severity: Literal["error", "warning"] = "error"

    @property
    def is_error(self) -> bool:
        return self.severity == "error"


# ============================================================================
# Execution
# ============================================================================

class Execution(BaseModel):
    """Mutable, persisted instance of a workflow definition being run"""
    model_config = ConfigDict(extra="ignore")  # storage adds lock fields

    execution_id: str
    workflow_id: str
    workflow_version: int = 1
    trigger_type: Optional[str] = None
    status: ExecutionStatus = ExecutionStatus.PENDING
    current_node_id: Optional[str] = None
    pending_node_id: Optional[str] = Field(None, description="Node to continue with on resume")
    waiting_on: Optional[NodeType] = Field(None, description="Type of the node that paused the execution")
    context: Dict[str, Any] = Field(default_factory=dict)
    resume_at: Optional[datetime] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    steps_taken: int = 0
    created_at: datetime
    started_at: Optional[datetime] = None
    paused_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_activity_at: datetime


class ExecutionStatusView(BaseModel):
    """Externally visible status of an execution"""
    execution_id: str
    workflow_id: str
    status: ExecutionStatus
    current_node_id: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    resume_at: Optional[datetime] = None
    error_message: Optional[str] = None


class NodeResult(BaseModel):
    """Transition produced by a node processor"""
    next_node_id: Optional[str] = None
    should_pause: bool = False
    resume_at: Optional[datetime] = None
    context_updates: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict, description="Payload for the history entry")


# ============================================================================
# Tasks & History
# ============================================================================

class WorkflowTask(BaseModel):
    """Pending (or finished) human assignment created by an assignment node"""
    model_config = ConfigDict(extra="ignore")

    task_id: str
    execution_id: str
    node_id: str
    assign_to: str
    target_type: str
    target_value: Optional[str] = None
    assignee_id: Optional[str] = Field(None, description="Resolved user id, if any")
    task_type: str = TaskType.CUSTOM.value
    allowed_actions: List[str] = Field(default_factory=list)
    sla_deadline: Optional[datetime] = None
    escalate_to: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING
    completed_by: Optional[str] = None
    completed_at: Optional[datetime] = None
    action_taken: Optional[str] = None
    action_notes: Optional[str] = None
    escalated_at: Optional[datetime] = None
    escalated_from_task_id: Optional[str] = None
    created_at: datetime


class WorkflowHistory(BaseModel):
    """Append-only history entry"""
    model_config = ConfigDict(extra="ignore")

    history_id: str
    execution_id: str
    node_id: Optional[str] = None
    node_type: Optional[NodeType] = None
    event_type: HistoryEventType
    actor_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
    correlation_id: Optional[str] = None


class SweepReport(BaseModel):
    """What one SLA sweep run did"""
    escalated: List[str] = Field(default_factory=list, description="Task ids escalated")
    expired: List[str] = Field(default_factory=list, description="Task ids expired")
    resumed: List[str] = Field(default_factory=list, description="Execution ids resumed")
    skipped: List[str] = Field(default_factory=list, description="Ids left for the next run")
