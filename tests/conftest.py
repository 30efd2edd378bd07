"""
Pytest Configuration and Fixtures

This file contains shared fixtures and configuration for all tests.
Engines here run on the in-memory stores with recording fakes for the
domain operations, the directory and the notification senders.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

from flowengine.domain.errors import ActionExecutionError
from flowengine.domain.models import WorkflowDefinition
from flowengine.engine.engine import WorkflowEngine
from flowengine.repositories.memory import (
    InMemoryExecutionRepository,
    InMemoryHistoryRepository,
    InMemoryTaskRepository,
    InMemoryWorkflowRepository,
)


START = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


class FixedClock:
    """Deterministic clock; tests move it forward explicitly"""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingOperations:
    """Domain operations that record calls instead of touching MongoDB"""

    def __init__(self):
        self.calls: List[Tuple[str, str, Any]] = []
        self.fail_with: Optional[Exception] = None

    def _record(self, name: str, request_id: str, arg: Any = None) -> None:
        self.calls.append((name, request_id, arg))
        if self.fail_with is not None:
            raise self.fail_with

    def approve_request(self, request_id):
        self._record("approve_request", request_id)
        return None

    def reject_request(self, request_id, reason=None):
        self._record("reject_request", request_id, reason)
        return {"rejectionReason": reason}

    def fulfill_request(self, request_id):
        self._record("fulfill_request", request_id)
        return None

    def create_purchase_requisition(self, request_id, vendor_id=None):
        self._record("create_purchase_requisition", request_id, vendor_id)
        return {"purchaseRequisitionId": "PR-1", "purchaseRequisitionTotal": 1200}

    def reserve_stock(self, request_id):
        self._record("reserve_stock", request_id)
        if request_id == "REQ-no-stock":
            raise ActionExecutionError("Insufficient stock for item ITEM-1")
        return None

    def update_request_status(self, request_id, status):
        self._record("update_request_status", request_id, status)
        return None


class FakeDirectory:
    """Users keyed by id, role holders keyed by (role, site)"""

    def __init__(self):
        self.users: Dict[str, Dict[str, Any]] = {}
        self.roles: Dict[Tuple[str, Optional[str]], str] = {}

    def add_user(self, user_id: str, email: Optional[str] = None, phone: Optional[str] = None) -> None:
        self.users[user_id] = {"user_id": user_id, "email": email, "phone": phone, "is_active": True}

    def resolve_role_assignee(self, role, site_id=None):
        return self.roles.get((role, site_id))

    def resolve_user(self, user_id):
        return self.users.get(user_id)


class RecordingSender:
    """Notification senders that keep every message"""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    def _send(self, channel, recipient, subject, body, metadata):
        self.sent.append({
            "channel": channel,
            "recipient": recipient,
            "subject": subject,
            "body": body,
            "metadata": metadata or {},
        })
        return f"NTF-{len(self.sent)}"

    def send_email(self, recipient, subject, body, metadata=None):
        return self._send("email", recipient, subject, body, metadata)

    def send_in_app(self, recipient, subject, body, metadata=None):
        return self._send("in_app", recipient, subject, body, metadata)

    def send_sms(self, recipient, subject, body, metadata=None):
        return self._send("sms", recipient, subject, body, metadata)

    def send_slack(self, recipient, subject, body, metadata=None):
        return self._send("slack", recipient, subject, body, metadata)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def operations() -> RecordingOperations:
    return RecordingOperations()


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def stores():
    return {
        "definitions": InMemoryWorkflowRepository(),
        "executions": InMemoryExecutionRepository(),
        "tasks": InMemoryTaskRepository(),
        "history": InMemoryHistoryRepository(),
    }


@pytest.fixture
def make_engine(stores, operations, directory, sender, clock):
    """Factory so tests can pass an HTTP transport or a step budget"""
    def _make(**overrides) -> WorkflowEngine:
        kwargs = dict(
            definitions=stores["definitions"],
            executions=stores["executions"],
            tasks=stores["tasks"],
            history=stores["history"],
            operations=operations,
            directory=directory,
            sender=sender,
            clock=clock,
        )
        kwargs.update(overrides)
        return WorkflowEngine(**kwargs)
    return _make


@pytest.fixture
def engine(make_engine) -> WorkflowEngine:
    return make_engine()


@pytest.fixture
def save_definition(stores):
    """Store a definition document and return the parsed model"""
    def _save(document: Dict[str, Any]) -> WorkflowDefinition:
        definition = WorkflowDefinition.model_validate(document)
        return stores["definitions"].save_definition(definition)
    return _save


@pytest.fixture
def auto_approve_workflow(save_definition) -> WorkflowDefinition:
    """Small requests are approved automatically, others go to a reviewer"""
    return save_definition({
        "id": "WF-auto-approve",
        "name": "Auto approve small requests",
        "triggerType": "request_submitted",
        "rootNodeId": "check",
        "nodes": [
            {
                "id": "check",
                "type": "decision",
                "config": {
                    "condition": "requestData.totalValue < 500",
                    "trueNodeId": "approve",
                    "falseNodeId": "review"
                }
            },
            {"id": "approve", "type": "action", "config": {"action": "AUTO_APPROVE"}},
            {
                "id": "review",
                "type": "assignment",
                "config": {"assignTo": "role:site-manager", "slaHours": 24}
            }
        ]
    })


@pytest.fixture
def manager_review_workflow(save_definition) -> WorkflowDefinition:
    """Site manager review with an SLA, then approve or reject"""
    return save_definition({
        "id": "WF-manager-review",
        "name": "Manager review",
        "triggerType": "request_submitted",
        "rootNodeId": "assign",
        "nodes": [
            {
                "id": "assign",
                "type": "assignment",
                "config": {
                    "assignTo": "role:site-manager",
                    "slaHours": 24,
                    "allowedActions": ["approve", "reject"]
                },
                "next": "decide"
            },
            {
                "id": "decide",
                "type": "decision",
                "config": {
                    "condition": "lastUserAction.action == 'approve'",
                    "trueNodeId": "approve",
                    "falseNodeId": "reject"
                }
            },
            {"id": "approve", "type": "action", "config": {"action": "AUTO_APPROVE"}},
            {
                "id": "reject",
                "type": "action",
                "config": {"action": "AUTO_REJECT", "reason": "Declined by manager"}
            }
        ]
    })


@pytest.fixture
def request_context() -> Dict[str, Any]:
    return {
        "requestId": "REQ-1",
        "requestData": {"requestId": "REQ-1", "totalValue": 120, "requestorId": "U-req", "siteId": "S-1"}
    }
