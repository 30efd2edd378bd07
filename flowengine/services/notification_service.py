"""Notification Service - Delivery of workflow notifications

Email and in-app messages are written to outbox collections that the
mail relay and UI consume. SMS and Slack are pushed over HTTP to the
configured gateway and webhook.
"""
from typing import Any, Dict, Optional, Protocol
import httpx
from pymongo.collection import Collection

from ..domain.errors import NotificationSendError
from ..repositories.mongo_client import get_collection
from ..config.settings import settings
from ..utils.idgen import generate_notification_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class NotificationSender(Protocol):
    """Channel senders used by notification nodes"""

    def send_email(self, recipient: str, subject: str, body: str, metadata: Optional[Dict[str, Any]] = None) -> Optional[str]: ...

    def send_in_app(self, recipient: str, subject: str, body: str, metadata: Optional[Dict[str, Any]] = None) -> Optional[str]: ...

    def send_sms(self, recipient: str, subject: str, body: str, metadata: Optional[Dict[str, Any]] = None) -> Optional[str]: ...

    def send_slack(self, recipient: str, subject: str, body: str, metadata: Optional[Dict[str, Any]] = None) -> Optional[str]: ...


class NotificationService:
    """Service for sending notifications"""

    def __init__(
        self,
        outbox: Optional[Collection] = None,
        in_app: Optional[Collection] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self._outbox = outbox if outbox is not None else get_collection("notification_outbox")
        self._in_app = in_app if in_app is not None else get_collection("in_app_notifications")
        self._transport = transport

    # =========================================================================
    # Outbox channels
    # =========================================================================

    def send_email(
        self,
        recipient: str,
        subject: str,
        body: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """Queue an email in the notification outbox"""
        notification_id = generate_notification_id()
        metadata = metadata or {}
        self._outbox.insert_one({
            "_id": notification_id,
            "notification_id": notification_id,
            "channel": "email",
            "recipients": [recipient],
            "subject": subject,
            "body": body,
            "execution_id": metadata.get("execution_id"),
            "metadata": metadata,
            "status": "PENDING",
            "retry_count": 0,
            "created_at": utc_now()
        })
        logger.info(
            f"Queued email {notification_id} to {recipient}",
            extra={"execution_id": metadata.get("execution_id")}
        )
        return notification_id

    def send_in_app(
        self,
        recipient: str,
        subject: str,
        body: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """Create an in-app notification for the notification bell"""
        notification_id = generate_notification_id()
        metadata = metadata or {}
        self._in_app.insert_one({
            "_id": notification_id,
            "notification_id": notification_id,
            "recipient": recipient,
            "title": subject,
            "message": body,
            "execution_id": metadata.get("execution_id"),
            "action_url": metadata.get("action_url"),
            "is_read": False,
            "created_at": utc_now()
        })
        logger.info(
            f"Created in-app notification {notification_id} for {recipient}",
            extra={"execution_id": metadata.get("execution_id")}
        )
        return notification_id

    # =========================================================================
    # HTTP channels
    # =========================================================================

    def send_sms(
        self,
        recipient: str,
        subject: str,
        body: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """Send an SMS through the configured gateway"""
        if not settings.sms_gateway_url:
            logger.warning(f"SMS gateway not configured, skipping SMS to {recipient}")
            return None

        headers = {"Content-Type": "application/json"}
        if settings.sms_api_key:
            headers["Authorization"] = f"Bearer {settings.sms_api_key}"

        self._post(
            "sms",
            settings.sms_gateway_url,
            {"to": recipient, "message": body},
            headers
        )
        logger.info(f"SMS sent to {recipient}")
        return recipient

    def send_slack(
        self,
        recipient: str,
        subject: str,
        body: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """Post a message to the configured Slack webhook"""
        if not settings.slack_webhook_url:
            logger.warning(f"Slack webhook not configured, skipping Slack message to {recipient}")
            return None

        payload: Dict[str, Any] = {"text": f"*{subject}*\n{body}"}
        if recipient:
            payload["channel"] = recipient

        self._post("slack", settings.slack_webhook_url, payload, {"Content-Type": "application/json"})
        logger.info(f"Slack notification sent to {recipient}")
        return recipient

    def _post(self, channel: str, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> None:
        try:
            with httpx.Client(
                timeout=settings.notification_timeout_seconds,
                transport=self._transport
            ) as client:
                response = client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"{channel} delivery failed: {e}")
            raise NotificationSendError(
                f"Failed to send {channel} notification: {e}",
                details={"channel": channel}
            )

        if not response.is_success:
            logger.error(f"{channel} delivery rejected: {response.status_code} - {response.text[:200]}")
            raise NotificationSendError(
                f"{channel} gateway returned {response.status_code}",
                details={"channel": channel, "status_code": response.status_code}
            )
