"""
Decisions service.

Serves the server-side resolution and per-entity decision endpoints over
a config bundle loaded from a JSON file.
"""

import time
from typing import Any, Dict, Optional

from fastapi import Body, Header

from shared.base_service import BaseService
from shared.errors import (
    AuthenticationError, BundleUnavailableError, DecisionEngineException,
    PolicyNotFoundError, ValidationError
)
from .bundle_store import BundleStore
from .decision import DecisionEvaluator
from .models import (
    ConfigBundle, EdgeBatchDecideRequest, EdgeBatchDecideResponse, EdgeDecideBody,
    EdgeDecideResponse, ServerResolveRequest, ServerResolveResponse
)
from .resolution.entity import (
    WeightSource, dynamic_allocation_count, get_entity_weights, selection_seed,
    weighted_selection
)


class DecisionsService(BaseService):
    """Decisions service implementation."""

    def __init__(self, bundle: Optional[ConfigBundle] = None, **config_overrides):
        super().__init__("decisions", 8020, **config_overrides)

        self.bundle_store = BundleStore(bundle)
        if bundle is None and self.config.bundle_path:
            self._load_bundle_file(self.config.bundle_path)

        self.evaluator = DecisionEvaluator(bundle=self.bundle_store.get(), metrics=self.metrics)

        self._setup_decisions_routes()

    def _load_bundle_file(self, path: str):
        try:
            self.bundle_store.load_file(path)
        except DecisionEngineException as e:
            # Service stays up and answers 503 until a valid bundle is present
            self.logger.error("Failed to load config bundle", path=path, code=e.code, error=e.message)

    def _authorize(self, authorization: Optional[str]):
        api_key = self.config.api_key
        if not api_key:
            return
        if authorization != f"Bearer {api_key}":
            raise AuthenticationError("Invalid or missing API key")

    def _require_bundle(self) -> ConfigBundle:
        bundle = self.bundle_store.require()
        if self.evaluator.bundle is not bundle:
            self.evaluator.update_bundle(bundle)
        return bundle

    def decide_for_entity(self, bundle: ConfigBundle, policy_id: str, body: EdgeDecideBody) -> EdgeDecideResponse:
        """Weighted per-entity selection using the entity state in the bundle."""
        policy = bundle.find_policy(policy_id)
        if policy is None:
            raise PolicyNotFoundError(policy_id)

        allocation_count = body.allocation_count
        if allocation_count is None:
            if policy.entity_config is not None and policy.entity_config.dynamic_allocations is not None:
                allocation_count = dynamic_allocation_count(policy, body.context or {})
            else:
                allocation_count = len(policy.allocations)
        if not allocation_count or allocation_count <= 0:
            raise ValidationError(
                "Allocation count must be positive",
                details={"policy_id": policy_id, "allocation_count": allocation_count}
            )
        if allocation_count > self.config.max_allocation_count:
            raise ValidationError(
                "Allocation count exceeds the configured maximum",
                details={
                    "policy_id": policy_id,
                    "allocation_count": allocation_count,
                    "max_allocation_count": self.config.max_allocation_count
                }
            )

        weights, source = get_entity_weights(bundle, policy.id, body.entity_id, allocation_count)
        index = weighted_selection(weights, selection_seed(body.entity_id, body.unit_key_value, policy.id))

        if index < len(policy.allocations):
            allocation_name = policy.allocations[index].name
        else:
            allocation_name = str(index)

        cold_start = source != WeightSource.ENTITY
        self.metrics.increment_counter("edge_decisions_total", cold_start=str(cold_start).lower())
        self.logger.debug(
            "Entity decision",
            policy_id=policy.id,
            entity_id=body.entity_id,
            allocation_index=index,
            weight_source=source.value
        )

        return EdgeDecideResponse(
            allocation_index=index,
            allocation_name=allocation_name,
            weights=weights,
            cold_start=cold_start,
            state_version=policy.state_version or bundle.version,
        )

    def _setup_decisions_routes(self):
        """Set up decisions-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            bundle = self.bundle_store.get()
            return {
                "service": "decisions",
                "message": "Decision Engine - Decisions Service",
                "version": "1.0.0",
                "bundle_version": bundle.version if bundle else None,
                "capabilities": ["resolve", "decide", "decide_batch"]
            }

        @self.app.post("/v1/resolve")
        async def resolve(
            request: ServerResolveRequest,
            authorization: Optional[str] = Header(None)
        ):
            """Resolve bundle parameters server-side."""
            self._authorize(authorization)
            bundle = self._require_bundle()

            requested = set(request.parameters) if request.parameters is not None else None
            defaults = {
                param.key: param.default
                for param in bundle.parameters
                if requested is None or param.key in requested
            }

            decision = self.evaluator.decide(request.context, defaults)

            return ServerResolveResponse(
                decision_id=decision.decision_id,
                assignments=decision.assignments,
                metadata=decision.metadata,
                state_version=bundle.version,
                suggested_refresh_ms=self.config.suggested_refresh_ms,
            ).to_payload()

        # Registered before the parameterised route so "batch" is not read as a policy id
        @self.app.post("/v1/decide/batch")
        async def decide_batch(
            request: EdgeBatchDecideRequest,
            authorization: Optional[str] = Header(None)
        ):
            """Per-entity decisions for several policies, index-aligned."""
            self._authorize(authorization)
            bundle = self._require_bundle()
            start_time = time.time()

            responses = []
            for item in request.requests:
                try:
                    responses.append(self.decide_for_entity(bundle, item.policy_id, item))
                except (PolicyNotFoundError, ValidationError) as e:
                    self.logger.info("Batch item unresolved", policy_id=item.policy_id, code=e.code)
                    responses.append(None)

            self.logger.debug(
                "Batch decided",
                requested=len(request.requests),
                duration_ms=round((time.time() - start_time) * 1000, 2)
            )
            return EdgeBatchDecideResponse(responses=responses).to_payload()

        @self.app.post("/v1/decide/{policy_id}")
        async def decide(
            policy_id: str,
            body: EdgeDecideBody = Body(...),
            authorization: Optional[str] = Header(None)
        ):
            """Per-entity decision for one policy."""
            self._authorize(authorization)
            bundle = self._require_bundle()
            return self.decide_for_entity(bundle, policy_id, body).to_payload()

    async def _check_dependencies(self) -> Dict[str, Any]:
        """Report bundle status; no bundle means the service cannot decide."""
        bundle = self.bundle_store.get()
        if bundle is None:
            raise BundleUnavailableError()
        return {"bundle": {"status": "ok", "version": bundle.version}}


def create_app(bundle: Optional[ConfigBundle] = None, **config_overrides):
    """Create decisions service application."""
    service = DecisionsService(bundle, **config_overrides)
    return service.app


if __name__ == "__main__":
    service = DecisionsService()
    service.run()
