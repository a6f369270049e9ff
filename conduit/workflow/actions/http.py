"""
Conduit HTTP Step Handler

Make outbound HTTP requests from workflows.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, TYPE_CHECKING

import httpx
import structlog

from conduit.exceptions import StepExecutionError
from conduit.workflow.actions.executor import BaseStepHandler
from conduit.workflow.types import StepType

if TYPE_CHECKING:
    from conduit.workflow.execution.context import ExecutionContext

logger = structlog.get_logger(__name__)


class HttpStepHandler(BaseStepHandler):
    """
    Handler for http-request steps.

    Config: url, method (GET), headers, body (sent as JSON), timeout,
    parse_response (JSON-decode the body instead of returning text).
    Non-2xx responses fail the step.
    """

    step_type = StepType.HTTP_REQUEST
    required_keys = ("url",)

    def __init__(
        self,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.transport = transport

    async def execute(
        self,
        config: Dict[str, Any],
        variables: Mapping[str, Any],
        results: Mapping[str, Any],
        context: Optional["ExecutionContext"] = None,
    ) -> Any:
        """Execute an HTTP request."""
        url = str(self.require(config, "url"))
        method = str(config.get("method") or "GET").upper()
        headers = {k: str(v) for k, v in (config.get("headers") or {}).items()}
        body = config.get("body")
        timeout = float(config.get("timeout") or self.timeout)
        parse_response = bool(config.get("parse_response", config.get("parseResponse", False)))

        logger.info("calling_http", url=url, method=method)

        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=timeout) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=headers,
                    json=body,
                )
        except httpx.TimeoutException as e:
            raise StepExecutionError(
                f"HTTP request timeout after {timeout}s: {url}",
                step_type=self.step_type.value,
            ) from e
        except httpx.TransportError as e:
            raise StepExecutionError(
                f"Network connection error calling {url}: {e}",
                step_type=self.step_type.value,
            ) from e

        if not response.is_success:
            raise StepExecutionError(
                f"HTTP request failed: {response.status_code} {response.reason_phrase}",
                step_type=self.step_type.value,
            )

        if parse_response:
            try:
                return response.json()
            except ValueError as e:
                raise StepExecutionError(
                    f"Invalid JSON in HTTP response from {url}",
                    step_type=self.step_type.value,
                ) from e

        return response.text
