"""
Seed Data Script - Creates the default workflows
Run: python -m scripts.seed_data
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from flowengine.engine.engine import WorkflowEngine
from flowengine.repositories.mongo_client import create_indexes
from flowengine.services.workflow_service import WorkflowService


REQUEST_APPROVAL = {
    "id": "WF-request-approval",
    "name": "Standard Request Approval",
    "description": "Auto-approve small requests, route the rest to the site manager",
    "triggerType": "request_submitted",
    "isDefault": True,
    "rootNodeId": "check_value",
    "nodes": [
        {
            "id": "check_value",
            "type": "decision",
            "label": "Small request?",
            "config": {
                "condition": "requestData.totalValue < 500",
                "trueNodeId": "auto_approve",
                "falseNodeId": "manager_review"
            }
        },
        {
            "id": "auto_approve",
            "type": "action",
            "config": {"action": "AUTO_APPROVE", "reason": "Below approval threshold"},
            "next": "notify_approved"
        },
        {
            "id": "manager_review",
            "type": "assignment",
            "label": "Site manager approval",
            "config": {
                "assignTo": "dynamic:site_manager",
                "taskType": "approve_request",
                "slaHours": 24,
                "escalateTo": "role:Regional Manager",
                "allowedActions": ["approve", "reject"]
            },
            "next": "check_decision"
        },
        {
            "id": "check_decision",
            "type": "decision",
            "config": {
                "condition": "lastUserAction.action == 'approve'",
                "trueNodeId": "approve",
                "falseNodeId": "reject"
            }
        },
        {
            "id": "approve",
            "type": "action",
            "config": {"action": "AUTO_APPROVE", "reason": "Approved by site manager"},
            "next": "notify_approved"
        },
        {
            "id": "reject",
            "type": "action",
            "config": {"action": "AUTO_REJECT", "reason": "Rejected by site manager"},
            "next": "notify_rejected"
        },
        {
            "id": "notify_approved",
            "type": "notification",
            "config": {"channel": "email", "sendTo": "dynamic:requestor", "template": "request_approved"}
        },
        {
            "id": "notify_rejected",
            "type": "notification",
            "config": {"channel": "email", "sendTo": "dynamic:requestor", "template": "request_rejected"}
        }
    ]
}

STOCK_LOW = {
    "id": "WF-stock-low",
    "name": "Low Stock Follow-up",
    "description": "Tell procurement about low stock and remind them a day later",
    "triggerType": "stock_low",
    "isDefault": True,
    "rootNodeId": "notify_procurement",
    "nodes": [
        {
            "id": "notify_procurement",
            "type": "notification",
            "config": {"channel": "in_app", "sendTo": "role:Procurement", "template": "stock_low"},
            "next": "wait"
        },
        {
            "id": "wait",
            "type": "delay",
            "config": {"delayType": "days", "delayValue": 1},
            "next": "remind_procurement"
        },
        {
            "id": "remind_procurement",
            "type": "notification",
            "config": {"channel": "email", "sendTo": "role:Procurement", "template": "stock_low"}
        }
    ]
}


def seed_workflows():
    """Create or replace the default workflows"""
    create_indexes()
    service = WorkflowService(WorkflowEngine())
    for definition in (REQUEST_APPROVAL, STOCK_LOW):
        saved = service.save_definition(definition)
        print(f"Saved workflow: {saved.workflow_id} (v{saved.version})")


if __name__ == "__main__":
    seed_workflows()
