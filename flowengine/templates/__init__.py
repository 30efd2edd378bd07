"""
Message Templates Package

Subjects and bodies for workflow notifications.
"""
from .message_templates import (
    get_message_template,
    render_text,
    MessageTemplateKey,
    TEMPLATE_REGISTRY
)

__all__ = [
    "get_message_template",
    "render_text",
    "MessageTemplateKey",
    "TEMPLATE_REGISTRY"
]
