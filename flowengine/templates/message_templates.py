"""
Message Templates - Notification subjects and bodies for workflow events

Templates are plain strings with {placeholder} markers. A placeholder is a
dotted path into the execution context, e.g. {requestData.requestId}.
Placeholders that do not resolve are left in place.
"""
import re
from typing import Any, Dict, Optional
from enum import Enum


class MessageTemplateKey(str, Enum):
    """Built-in notification templates"""
    REQUEST_SUBMITTED = "request_submitted"
    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"
    REQUEST_FULFILLED = "request_fulfilled"
    TASK_ASSIGNED = "task_assigned"
    SLA_ESCALATION = "sla_escalation"
    PR_CREATED = "pr_created"
    STOCK_LOW = "stock_low"


_PLACEHOLDER_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*)\}")


TEMPLATE_REGISTRY: Dict[MessageTemplateKey, Dict[str, str]] = {
    MessageTemplateKey.REQUEST_SUBMITTED: {
        "subject": "Request {requestData.requestId} submitted",
        "body": "Your request {requestData.requestId} has been submitted and is being processed.",
    },
    MessageTemplateKey.REQUEST_APPROVED: {
        "subject": "Request {requestData.requestId} approved",
        "body": "Good news: request {requestData.requestId} has been approved.",
    },
    MessageTemplateKey.REQUEST_REJECTED: {
        "subject": "Request {requestData.requestId} rejected",
        "body": "Request {requestData.requestId} was rejected. Reason: {rejectionReason}",
    },
    MessageTemplateKey.REQUEST_FULFILLED: {
        "subject": "Request {requestData.requestId} fulfilled",
        "body": "Request {requestData.requestId} has been fulfilled.",
    },
    MessageTemplateKey.TASK_ASSIGNED: {
        "subject": "Action required on request {requestData.requestId}",
        "body": "A task on request {requestData.requestId} is waiting for you. {app_url}/requests/{requestData.requestId}",
    },
    MessageTemplateKey.SLA_ESCALATION: {
        "subject": "Escalation: request {requestData.requestId}",
        "body": "A task on request {requestData.requestId} missed its deadline and was escalated to you.",
    },
    MessageTemplateKey.PR_CREATED: {
        "subject": "Purchase requisition {purchaseRequisitionId} created",
        "body": "Purchase requisition {purchaseRequisitionId} was raised for request {requestData.requestId}.",
    },
    MessageTemplateKey.STOCK_LOW: {
        "subject": "Low stock alert",
        "body": "Stock for item {stockData.itemId} at site {stockData.siteId} is below its threshold.",
    },
}

FALLBACK_TEMPLATE = {
    "subject": "[Notification] Workflow update",
    "body": "You have a new notification regarding a workflow you are involved in.",
}


def _resolve(path: str, values: Dict[str, Any]) -> Optional[Any]:
    value: Any = values
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


def render_text(text: str, values: Dict[str, Any]) -> str:
    """Substitute {dotted.path} placeholders"""
    def replace(match: "re.Match[str]") -> str:
        value = _resolve(match.group(1), values)
        return match.group(0) if value is None else str(value)

    return _PLACEHOLDER_RE.sub(replace, text)


def get_message_template(
    template_key: Optional[str],
    context: Dict[str, Any],
    custom_message: Optional[str] = None,
    app_url: str = ""
) -> Dict[str, str]:
    """
    Get a rendered message

    Args:
        template_key: Template identifier (from MessageTemplateKey)
        context: Execution context used for placeholders
        custom_message: Overrides the template body when given
        app_url: Base URL available to templates as {app_url}

    Returns:
        Dict with 'subject' and 'body' keys
    """
    template = FALLBACK_TEMPLATE
    if template_key:
        try:
            template = TEMPLATE_REGISTRY.get(MessageTemplateKey(template_key), FALLBACK_TEMPLATE)
        except ValueError:
            template = FALLBACK_TEMPLATE

    values = {**context, "app_url": app_url}
    body = custom_message if custom_message else template["body"]
    return {
        "subject": render_text(template["subject"], values),
        "body": render_text(body, values),
    }
