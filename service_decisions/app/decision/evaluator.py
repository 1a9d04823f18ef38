"""
Decision evaluator.

Caller-facing facade over the resolution engine. It owns the current
bundle, runs plugin hooks around each decision, remembers recent
decisions for attribution and pre-fetches per-entity results for
edge-mode policies. Nothing here raises into the caller: on any
unexpected failure the caller defaults are returned.
"""

import time
from typing import Any, Dict, List, Mapping, Optional

from shared.config import BaseConfig
from shared.logging import get_logger, reset_decision_context, set_decision_context
from shared.metrics import MetricsCollector
from ..adapters.decision_client import DecisionClient, create_edge_decide_request
from ..hashing import compute_bucket
from ..ids import generate_decision_id, utc_timestamp
from ..models import (
    ConfigBundle, Context, DecisionMetadata, DecisionResult, EdgeDecideRequest,
    EdgeResult, ExposureEvent, TrackAttribution
)
from ..resolution import engine
from ..resolution.entity import allocation_count_for
from ..rules import evaluate_conditions
from .cache import DecisionCache
from .plugins import PluginManager

ATTRIBUTION_MODES = ("cumulative", "decision")


class DecisionEvaluator:
    """Evaluates parameters and decisions against the current bundle."""

    def __init__(
        self,
        bundle: Optional[ConfigBundle] = None,
        plugins: Optional[PluginManager] = None,
        decision_cache: Optional[DecisionCache] = None,
        decision_client: Optional[DecisionClient] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        self._bundle = bundle
        self.plugins = plugins or PluginManager()
        self.decision_cache = decision_cache
        self.decision_client = decision_client
        self.metrics = metrics
        self.logger = get_logger("decisions.evaluator")

    @classmethod
    def from_config(
        cls,
        config: BaseConfig,
        bundle: Optional[ConfigBundle] = None,
        metrics: Optional[MetricsCollector] = None
    ) -> "DecisionEvaluator":
        """Build an evaluator with a decision client and cache from settings."""
        decision_client = None
        if config.api_key:
            decision_client = DecisionClient(
                config.decisions_service_url,
                config.org_id,
                config.project_id,
                config.env,
                config.api_key,
                default_timeout_ms=config.resolve_timeout_ms,
                decide_timeout_ms=config.decide_timeout_ms,
                batch_timeout_ms=config.decide_batch_timeout_ms
            )

        return cls(
            bundle=bundle,
            decision_cache=DecisionCache(
                ttl_seconds=config.decision_cache_ttl_seconds,
                max_entries=config.decision_cache_max_entries
            ),
            decision_client=decision_client,
            metrics=metrics
        )

    @property
    def bundle(self) -> Optional[ConfigBundle]:
        return self._bundle

    def update_bundle(self, bundle: ConfigBundle):
        """Swap in a new bundle; decisions in flight keep the old one."""
        self._bundle = bundle
        self.logger.info("Config bundle updated", version=bundle.version)
        self.plugins.run_config_update(bundle)

    def get_params(self, context: Context, defaults: Mapping[str, Any]) -> Dict[str, Any]:
        """Resolve parameters, falling back to ``defaults`` on any failure."""
        try:
            context = self.plugins.run_before_decision(context)
            assignments = engine.resolve_parameters(self._bundle, context, defaults)
        except Exception as e:
            self.logger.error("Parameter resolution failed", error=str(e), exc_info=True)
            return dict(defaults)

        self.plugins.run_resolve(assignments)
        return assignments

    def decide(
        self,
        context: Context,
        defaults: Mapping[str, Any],
        edge_results: Optional[Mapping[str, EdgeResult]] = None
    ) -> DecisionResult:
        """Make a decision, falling back to ``defaults`` on any failure."""
        start_time = time.time()
        source = "edge" if edge_results else "bundle"

        try:
            context = self.plugins.run_before_decision(context)
            decision = engine.decide(self._bundle, context, defaults, edge_results)
        except Exception as e:
            self.logger.error("Decision failed", error=str(e), exc_info=True)
            decision = self._fallback_decision(defaults)
            source = "fallback"

        # Scoped to the cache and plugin hooks of this decision
        tokens = set_decision_context(
            unit_key=decision.metadata.unit_key_value,
            decision_id=decision.decision_id
        )
        try:
            if self.decision_cache is not None:
                self.decision_cache.put(decision)
            self.plugins.run_decision(decision)
        finally:
            reset_decision_context(tokens)

        if self.metrics is not None:
            self.metrics.increment_counter("decisions_total", source=source)
            self.metrics.observe_histogram("decision_duration_seconds", time.time() - start_time, source=source)

        return decision

    async def decide_with_edge(self, context: Context, defaults: Mapping[str, Any]) -> DecisionResult:
        """Pre-fetch per-entity results for edge-mode policies, then decide."""
        edge_results: Dict[str, EdgeResult] = {}
        try:
            edge_results = await self.fetch_edge_results(context)
        except Exception as e:
            self.logger.error("Edge pre-fetch failed", error=str(e), exc_info=True)

        return self.decide(context, defaults, edge_results or None)

    def _edge_requests(self, bundle: ConfigBundle, context: Context) -> List[EdgeDecideRequest]:
        unit_key_value = engine.get_unit_key_value(bundle, context)
        if not unit_key_value:
            return []

        requests = []
        for layer in bundle.layers:
            bucket = compute_bucket(unit_key_value, layer.id, bundle.hashing.bucket_count)
            for policy in layer.policies:
                entity_config = policy.entity_config
                if entity_config is None or entity_config.resolution_mode != "edge":
                    continue
                if not policy.is_running:
                    continue
                if policy.eligible_bucket_range is not None and not policy.eligible_bucket_range.contains(bucket):
                    continue
                if not evaluate_conditions(policy.conditions, context):
                    continue

                allocation_count = allocation_count_for(policy, context)
                if not allocation_count:
                    continue

                request = create_edge_decide_request(
                    policy.id,
                    entity_config.entity_keys,
                    context,
                    unit_key_value,
                    allocation_count
                )
                if request is not None:
                    requests.append(request)
        return requests

    async def fetch_edge_results(self, context: Context) -> Dict[str, EdgeResult]:
        """Fetch per-entity results keyed by policy id.

        Policies whose request fails are absent from the result, which makes
        them resolve to no allocation.
        """
        bundle = self._bundle
        if bundle is None or self.decision_client is None:
            return {}

        requests = self._edge_requests(bundle, context)
        if not requests:
            return {}

        timeouts = []
        for request in requests:
            policy = bundle.find_policy(request.policy_id)
            if policy is not None and policy.entity_config.edge_timeout_ms:
                timeouts.append(policy.entity_config.edge_timeout_ms)
        timeout_ms = max(timeouts) if timeouts else None

        responses = await self.decision_client.decide_entity_batch(requests, timeout_ms)

        edge_results: Dict[str, EdgeResult] = {}
        for request, response in zip(requests, responses):
            if response is None:
                continue
            edge_results[request.policy_id] = EdgeResult(
                allocation_index=response.allocation_index,
                entity_id=request.entity_id
            )
            if self.metrics is not None:
                self.metrics.increment_counter(
                    "edge_decisions_total",
                    cold_start=str(response.cold_start).lower()
                )

        self.logger.debug("Fetched edge results", requested=len(requests), resolved=len(edge_results))
        return edge_results

    def expose(self, decision: DecisionResult) -> List[ExposureEvent]:
        """Build exposure events for a decision, dropping cancelled ones.

        Attribution-only layers were not shown to the unit and produce no
        exposure.
        """
        events = []
        timestamp = utc_timestamp()
        for layer in decision.metadata.layers:
            if layer.attribution_only or not layer.policy_id or not layer.allocation_name:
                continue
            event = ExposureEvent(
                decision_id=decision.decision_id,
                unit_key_value=decision.metadata.unit_key_value,
                layer_id=layer.layer_id,
                policy_id=layer.policy_id,
                allocation_name=layer.allocation_name,
                timestamp=timestamp,
            )
            if self.plugins.run_exposure(event):
                events.append(event)
        return events

    def build_attribution(
        self,
        unit_key_value: str,
        decision_id: Optional[str] = None,
        mode: str = "cumulative"
    ) -> Optional[List[TrackAttribution]]:
        """Attribute a tracked outcome to the experiments behind it.

        ``decision`` mode uses the single cached decision ``decision_id``.
        ``cumulative`` mode uses every cached decision for the unit, keeping
        the most recent allocation per layer and policy. Returns ``None``
        when nothing can be attributed or ``mode`` is unknown.
        """
        if mode not in ATTRIBUTION_MODES:
            self.logger.warning("Unknown attribution mode", mode=mode, modes=list(ATTRIBUTION_MODES))
            return None
        if self.decision_cache is None:
            return None

        if mode == "decision":
            if not decision_id:
                return None
            cached = self.decision_cache.get(decision_id)
            if cached is None:
                return None
            return [
                TrackAttribution(
                    layer_id=layer.layer_id,
                    policy_id=layer.policy_id,
                    allocation_name=layer.allocation_name
                )
                for layer in cached.metadata.layers
                if layer.policy_id and layer.allocation_name
            ]

        attributions: Dict[str, TrackAttribution] = {}
        for cached in self.decision_cache.values():
            if cached.metadata.unit_key_value != unit_key_value:
                continue
            for layer in cached.metadata.layers:
                if not layer.policy_id or not layer.allocation_name:
                    continue
                attributions[f"{layer.layer_id}:{layer.policy_id}"] = TrackAttribution(
                    layer_id=layer.layer_id,
                    policy_id=layer.policy_id,
                    allocation_name=layer.allocation_name
                )

        return list(attributions.values()) or None

    def destroy(self):
        self.plugins.run_destroy()
        if self.decision_cache is not None:
            self.decision_cache.clear()

    def _fallback_decision(self, defaults: Mapping[str, Any]) -> DecisionResult:
        return DecisionResult(
            decision_id=generate_decision_id(),
            assignments=dict(defaults),
            metadata=DecisionMetadata(timestamp=utc_timestamp(), unit_key_value=""),
        )
