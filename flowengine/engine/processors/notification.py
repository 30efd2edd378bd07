"""Notification Processor - Send a message and continue"""
from typing import Any, Dict, Optional

from .base import NodeProcessor
from ...config.settings import settings
from ...domain.enums import NodeType, NotificationChannel
from ...domain.errors import DefinitionError, NotificationSendError
from ...domain.models import Execution, NodeResult, NotificationNode
from ...services.directory_service import DirectoryLookup
from ...services.notification_service import NotificationSender
from ...templates import get_message_template
from ...utils.logger import get_logger

logger = get_logger(__name__)


class NotificationProcessor(NodeProcessor):
    """
    Resolve the recipient, render the message and hand it to the channel sender

    sendTo forms: dynamic:requestor, user:<id>, role:<id>, or a bare
    address passed through unchanged.
    """

    node_type = NodeType.NOTIFICATION

    def __init__(self, sender: NotificationSender, directory: DirectoryLookup):
        self.sender = sender
        self.directory = directory

    def process(self, node: NotificationNode, context: Dict[str, Any], execution: Execution) -> NodeResult:
        config = node.config
        try:
            channel = NotificationChannel(config.channel.lower())
        except ValueError:
            raise DefinitionError(
                f"Unknown notification channel: {config.channel}",
                details={"node_id": node.id, "channel": config.channel}
            )

        recipient_id = self.resolve_recipient(config.send_to, context)
        if not recipient_id:
            raise NotificationSendError(
                f"Could not resolve notification recipient '{config.send_to}'",
                details={"node_id": node.id, "send_to": config.send_to}
            )
        address = self._address_for(channel, recipient_id)

        message = get_message_template(
            config.template, context, config.custom_message, app_url=settings.frontend_url
        )
        metadata = {**config.metadata, "execution_id": execution.execution_id, "node_id": node.id}

        send = {
            NotificationChannel.EMAIL: self.sender.send_email,
            NotificationChannel.IN_APP: self.sender.send_in_app,
            NotificationChannel.SMS: self.sender.send_sms,
            NotificationChannel.SLACK: self.sender.send_slack,
        }[channel]
        notification_id = send(address, message["subject"], message["body"], metadata)

        logger.info(
            f"Sent {channel.value} notification to {address}",
            extra={"execution_id": execution.execution_id, "node_id": node.id}
        )
        return NodeResult(
            next_node_id=node.next,
            details={
                "channel": channel.value,
                "recipient": address,
                "template": config.template,
                "notification_id": notification_id
            }
        )

    def resolve_recipient(self, send_to: str, context: Dict[str, Any]) -> Optional[str]:
        target_type, sep, target_value = send_to.partition(":")
        if not sep:
            return send_to.strip() or None

        target_type = target_type.strip().lower()
        if target_type == "dynamic":
            if target_value == "requestor":
                request_data = context.get("requestData") or {}
                requestor_id = request_data.get("requestorId") if isinstance(request_data, dict) else None
                return str(requestor_id) if requestor_id else None
            return None
        if target_type == "role":
            request_data = context.get("requestData") or {}
            site_id = request_data.get("siteId") if isinstance(request_data, dict) else None
            return self.directory.resolve_role_assignee(target_value, site_id)
        if target_type == "user":
            return target_value or None
        # e.g. mailto-style or channel names containing ':'
        return send_to

    def _address_for(self, channel: NotificationChannel, recipient_id: str) -> str:
        """Email and SMS go to the user's address when the recipient is a known user"""
        if channel not in (NotificationChannel.EMAIL, NotificationChannel.SMS):
            return recipient_id
        user = self.directory.resolve_user(recipient_id)
        if not user:
            return recipient_id
        field = "email" if channel == NotificationChannel.EMAIL else "phone"
        return user.get(field) or recipient_id
