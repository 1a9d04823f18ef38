"""
Decision client for the decisions service.

Calls the server-evaluated resolution endpoint and the per-entity decide
endpoints. Every call is bounded by a timeout and resolves to a value or
``None``; transport failures are logged and never raised to the caller.
No retries are made here, retry policy belongs to the caller.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence

import httpx
from pydantic import ValidationError as PydanticValidationError

from shared.logging import get_logger
from shared.errors import ExternalServiceError
from ..models import (
    Context, EdgeBatchDecideRequest, EdgeBatchDecideResponse, EdgeDecideRequest,
    EdgeDecideResponse, ServerResolveRequest, ServerResolveResponse
)
from ..resolution.entity import build_entity_id

DEFAULT_TIMEOUT_MS = 5000
DECIDE_TIMEOUT_CAP_MS = 100
DECIDE_BATCH_TIMEOUT_CAP_MS = 200


class DecisionClient:
    """Client for communicating with the decisions service."""

    def __init__(
        self,
        base_url: str,
        org_id: str,
        project_id: str,
        env: str,
        api_key: str,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        decide_timeout_ms: Optional[int] = None,
        batch_timeout_ms: Optional[int] = None
    ):
        self.base_url = base_url.rstrip('/')
        self.org_id = org_id
        self.project_id = project_id
        self.env = env
        self.api_key = api_key
        self.default_timeout_ms = default_timeout_ms
        # Per-entity calls are capped below the resolve timeout
        self.decide_timeout_ms = decide_timeout_ms or min(default_timeout_ms, DECIDE_TIMEOUT_CAP_MS)
        self.batch_timeout_ms = batch_timeout_ms or min(default_timeout_ms, DECIDE_BATCH_TIMEOUT_CAP_MS)
        self.logger = get_logger("decisions.decision_client")

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "X-Org-Id": self.org_id,
            "X-Project-Id": self.project_id,
            "X-Env": self.env,
        }

    async def _post(self, path: str, payload: Dict[str, Any], timeout_ms: int) -> Any:
        """POST JSON and return the decoded body.

        Raises on timeout, transport error or a non-2xx status; public
        methods turn every failure into ``None``.
        """
        timeout = timeout_ms / 1000
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await asyncio.wait_for(
                client.post(f"{self.base_url}{path}", json=payload, headers=self._headers()),
                timeout=timeout
            )

        if not response.is_success:
            raise ExternalServiceError(
                "decisions",
                f"{response.status_code} {response.reason_phrase}",
                details={"status_code": response.status_code, "path": path}
            )
        return response.json()

    def _log_failure(self, operation: str, error: Exception, timeout_ms: int):
        if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException)):
            self.logger.warning(f"{operation} timed out", timeout_ms=timeout_ms)
        else:
            self.logger.warning(f"{operation} failed", error=str(error), error_type=type(error).__name__)

    async def resolve(self, request: ServerResolveRequest) -> Optional[ServerResolveResponse]:
        """Full server-side resolution via POST /v1/resolve."""
        timeout_ms = self.default_timeout_ms
        payload = {
            "context": request.context,
            "env": request.env or self.env,
        }
        if request.parameters is not None:
            payload["parameters"] = request.parameters

        try:
            data = await self._post("/v1/resolve", payload, timeout_ms)
            return ServerResolveResponse.model_validate(data)
        except (asyncio.TimeoutError, httpx.HTTPError, ExternalServiceError,
                PydanticValidationError, ValueError) as e:
            self._log_failure("Resolve", e, timeout_ms)
            return None

    async def decide_entity(
        self,
        request: EdgeDecideRequest,
        timeout_ms: Optional[int] = None
    ) -> Optional[EdgeDecideResponse]:
        """Per-entity decision via POST /v1/decide/{policyId}."""
        timeout_ms = timeout_ms if timeout_ms is not None else self.decide_timeout_ms
        payload = request.to_payload()
        del payload["policyId"]

        try:
            data = await self._post(f"/v1/decide/{request.policy_id}", payload, timeout_ms)
            return EdgeDecideResponse.model_validate(data)
        except (asyncio.TimeoutError, httpx.HTTPError, ExternalServiceError,
                PydanticValidationError, ValueError) as e:
            self._log_failure("Edge decide", e, timeout_ms)
            return None

    async def decide_entity_batch(
        self,
        requests: Sequence[EdgeDecideRequest],
        timeout_ms: Optional[int] = None
    ) -> List[Optional[EdgeDecideResponse]]:
        """Batch per-entity decisions via POST /v1/decide/batch.

        The result is always index-aligned with ``requests``.
        """
        if not requests:
            return []
        if len(requests) == 1:
            return [await self.decide_entity(requests[0], timeout_ms)]

        timeout_ms = timeout_ms if timeout_ms is not None else self.batch_timeout_ms
        payload = EdgeBatchDecideRequest(requests=list(requests)).to_payload()

        try:
            data = await self._post("/v1/decide/batch", payload, timeout_ms)
            batch = EdgeBatchDecideResponse.model_validate(data)
        except (asyncio.TimeoutError, httpx.HTTPError, ExternalServiceError,
                PydanticValidationError, ValueError) as e:
            self._log_failure("Edge batch decide", e, timeout_ms)
            return [None] * len(requests)

        if len(batch.responses) != len(requests):
            self.logger.warning(
                "Edge batch decide returned misaligned responses",
                expected=len(requests),
                received=len(batch.responses)
            )
            return [None] * len(requests)

        return batch.responses


def create_edge_decide_request(
    policy_id: str,
    entity_keys: Sequence[str],
    context: Context,
    unit_key_value: str,
    allocation_count: Optional[int] = None
) -> Optional[EdgeDecideRequest]:
    """Build a decide request, or ``None`` if any entity key is missing.

    Uses the same entity id rule as in-process resolution so edge and bundle
    mode agree on entity identity.
    """
    entity_id = build_entity_id(entity_keys, context)
    if entity_id is None:
        return None

    return EdgeDecideRequest(
        policy_id=policy_id,
        entity_id=entity_id,
        unit_key_value=unit_key_value,
        allocation_count=allocation_count,
        context=context,
    )
