"""Integration Processor - Outbound HTTP call"""
import json
import time
from typing import Any, Callable, Dict, Optional
import httpx

from .base import NodeProcessor
from ...config.settings import settings
from ...domain.enums import NodeType
from ...domain.errors import IntegrationError
from ...domain.models import Execution, IntegrationNode, NodeResult
from ...utils.logger import get_logger

logger = get_logger(__name__)


class IntegrationProcessor(NodeProcessor):
    """
    Call an external API and store its JSON response under responseKey

    Non-2xx status, timeout, network failure and a non-JSON body all fail
    the node; the context is left untouched in that case.

    timeoutMs bounds the whole call. httpx timeouts apply per connect and
    per read, so the body is streamed and checked against an overall
    deadline after every chunk.
    """

    node_type = NodeType.INTEGRATION

    def __init__(
        self,
        transport: Optional[httpx.BaseTransport] = None,
        monotonic: Callable[[], float] = time.monotonic
    ):
        self._transport = transport
        self._monotonic = monotonic

    def process(self, node: IntegrationNode, context: Dict[str, Any], execution: Execution) -> NodeResult:
        config = node.config
        method = config.method.upper()
        timeout_ms = config.timeout_ms or settings.integration_default_timeout_ms
        headers = {"Content-Type": "application/json", **config.headers}
        details = {"method": method, "url": config.url, "node_id": node.id}

        logger.info(
            f"Calling external API: {method} {config.url}",
            extra={"execution_id": execution.execution_id, "node_id": node.id}
        )

        deadline = self._monotonic() + timeout_ms / 1000.0
        timed_out = IntegrationError(
            f"{method} {config.url} timed out after {timeout_ms}ms",
            details={**details, "timeout_ms": timeout_ms}
        )

        try:
            with httpx.Client(timeout=timeout_ms / 1000.0, transport=self._transport) as client:
                with client.stream(method, config.url, headers=headers, json=config.body) as response:
                    if self._monotonic() > deadline:
                        raise timed_out
                    if not response.is_success:
                        raise IntegrationError(
                            f"API call failed: {response.status_code} {response.reason_phrase}",
                            details={**details, "status_code": response.status_code}
                        )

                    body = bytearray()
                    for chunk in response.iter_bytes():
                        body.extend(chunk)
                        if self._monotonic() > deadline:
                            raise timed_out
                    status_code = response.status_code
        except httpx.TimeoutException as e:
            raise timed_out from e
        except httpx.HTTPError as e:
            raise IntegrationError(f"{method} {config.url} failed: {e}", details=details) from e

        try:
            data = json.loads(bytes(body))
        except ValueError as e:
            raise IntegrationError(
                f"{method} {config.url} returned a non-JSON body",
                details={**details, "status_code": status_code}
            ) from e

        return NodeResult(
            next_node_id=node.next,
            context_updates={config.response_key: data},
            details={"method": method, "url": config.url, "status_code": status_code}
        )
