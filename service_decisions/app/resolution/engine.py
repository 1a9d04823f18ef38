"""
Resolution engine.

Pure functions resolving parameters against a layered config bundle:

- Parameters are partitioned into layers.
- Within a layer, at most one policy applies to a unit.
- Across layers, policies overlap freely since they own different parameters.

Resolution order, lowest to highest priority:

1. Caller defaults (always-safe fallback)
2. Parameter defaults from the bundle
3. The override of the allocation matched in the parameter's layer
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from shared.logging import get_logger
from ..hashing import compute_bucket, find_matching_allocation
from ..ids import generate_decision_id, utc_timestamp
from ..models import (
    BundleAllocation, BundleParameter, BundlePolicy, ConfigBundle, Context,
    DecisionMetadata, DecisionResult, EdgeResult, LayerResolution
)
from ..rules import evaluate_conditions
from .entity import dynamic_allocation, resolve_per_entity_policy, stringify_value

logger = get_logger("decisions.resolution")

EdgeResults = Mapping[str, EdgeResult]


@dataclass
class ResolutionResult:
    """Assignments plus the metadata needed to assemble a decision."""
    assignments: Dict[str, Any]
    unit_key_value: str = ""
    layers: List[LayerResolution] = field(default_factory=list)
    matched_policies: List[BundlePolicy] = field(default_factory=list)


def get_unit_key_value(bundle: ConfigBundle, context: Context) -> Optional[str]:
    """Extract the unit key value from the context, or ``None`` if absent."""
    value = context.get(bundle.hashing.unit_key)
    if value is None:
        return None
    return stringify_value(value)


def _edge_allocation(policy: BundlePolicy, edge_result: EdgeResult) -> Optional[BundleAllocation]:
    index = edge_result.allocation_index
    if index < 0:
        return None
    if policy.entity_config.dynamic_allocations is not None:
        return dynamic_allocation(policy.id, index)
    if index >= len(policy.allocations):
        return None
    return policy.allocations[index]


def _match_policy(
    bundle: ConfigBundle,
    policy: BundlePolicy,
    bucket: int,
    context: Context,
    unit_key_value: str,
    edge_results: Optional[EdgeResults]
) -> Optional[BundleAllocation]:
    """Return the allocation a policy selects for this unit, if it applies."""
    if not policy.is_running:
        return None

    # Bucket eligibility is checked before conditions since it is cheaper
    if policy.eligible_bucket_range is not None and not policy.eligible_bucket_range.contains(bucket):
        return None

    if not evaluate_conditions(policy.conditions, context):
        return None

    entity_config = policy.entity_config
    if entity_config is not None and entity_config.resolution_mode == "edge":
        edge_result = edge_results.get(policy.id) if edge_results else None
        if edge_result is None:
            return None
        return _edge_allocation(policy, edge_result)

    if entity_config is not None and entity_config.resolution_mode == "bundle":
        selection = resolve_per_entity_policy(bundle, policy, context, unit_key_value)
        return selection.allocation if selection else None

    return find_matching_allocation(bucket, policy.allocations)


def resolve_internal(
    bundle: Optional[ConfigBundle],
    context: Context,
    defaults: Mapping[str, Any],
    edge_results: Optional[EdgeResults] = None
) -> ResolutionResult:
    """Resolve parameters and collect per-layer metadata.

    Single source of truth for resolution; never raises for missing data.
    """
    assignments = dict(defaults)

    if bundle is None:
        return ResolutionResult(assignments=assignments)

    unit_key_value = get_unit_key_value(bundle, context)
    if not unit_key_value:
        logger.debug("Unit key missing from context", unit_key=bundle.hashing.unit_key)
        return ResolutionResult(assignments=assignments)

    params = [param for param in bundle.parameters if param.key in assignments]

    for param in params:
        assignments[param.key] = param.default

    params_by_layer: Dict[str, List[BundleParameter]] = {}
    for param in params:
        params_by_layer.setdefault(param.layer_id, []).append(param)

    result = ResolutionResult(assignments=assignments, unit_key_value=unit_key_value)

    # Every layer is resolved, including ones with no requested parameters,
    # so attribution covers all experiments the unit is part of.
    for layer in bundle.layers:
        has_params = bool(params_by_layer.get(layer.id))
        bucket = compute_bucket(unit_key_value, layer.id, bundle.hashing.bucket_count)

        matched_policy: Optional[BundlePolicy] = None
        matched_allocation: Optional[BundleAllocation] = None

        for policy in layer.policies:
            allocation = _match_policy(bundle, policy, bucket, context, unit_key_value, edge_results)
            if allocation is None:
                continue

            matched_policy = policy
            matched_allocation = allocation
            result.matched_policies.append(policy)

            # Dynamic allocations carry no overrides; consumers read the
            # selected index from the layer's allocation name.
            if has_params:
                for key, value in allocation.overrides.items():
                    if key in assignments:
                        assignments[key] = value
            break

        result.layers.append(LayerResolution(
            layer_id=layer.id,
            bucket=bucket,
            policy_id=matched_policy.id if matched_policy else None,
            allocation_id=matched_allocation.id if matched_allocation else None,
            allocation_name=matched_allocation.name if matched_allocation else None,
            attribution_only=None if has_params else True,
        ))

    logger.debug(
        "Resolved parameters",
        layers=len(result.layers),
        matched=len(result.matched_policies),
        requested=len(assignments)
    )
    return result


def resolve_parameters(
    bundle: Optional[ConfigBundle],
    context: Context,
    defaults: Mapping[str, Any],
    edge_results: Optional[EdgeResults] = None
) -> Dict[str, Any]:
    """Resolve parameter assignments, always returning a full map."""
    return resolve_internal(bundle, context, defaults, edge_results).assignments


def filter_context(context: Context, policies: List[BundlePolicy]) -> Optional[Context]:
    """Keep only the context fields allowed by the matched policies.

    Returns ``None`` if no policy opts in or none of the allowed fields is
    present in the context.
    """
    allowed_fields: List[str] = []
    for policy in policies:
        if policy.context_logging is None:
            continue
        for name in policy.context_logging.allowed_fields:
            if name not in allowed_fields:
                allowed_fields.append(name)

    filtered = {name: context[name] for name in allowed_fields if name in context}
    return filtered or None


def decide(
    bundle: Optional[ConfigBundle],
    context: Context,
    defaults: Mapping[str, Any],
    edge_results: Optional[EdgeResults] = None
) -> DecisionResult:
    """Make a trackable decision with full metadata."""
    result = resolve_internal(bundle, context, defaults, edge_results)

    return DecisionResult(
        decision_id=generate_decision_id(),
        assignments=result.assignments,
        metadata=DecisionMetadata(
            timestamp=utc_timestamp(),
            unit_key_value=result.unit_key_value,
            layers=result.layers,
            filtered_context=filter_context(context, result.matched_policies),
        ),
    )
