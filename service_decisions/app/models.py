"""
Data models for the decisions service.

Bundle models mirror the camelCase JSON shipped to every SDK; they are
parsed once when a bundle is loaded and treated as immutable afterwards.
Decision and wire models serialise with the same camelCase aliases so an
in-process decision is identical on the wire to a server-side one.
"""

from typing import Dict, Any, Optional, List, Tuple, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


ParameterType = Literal["string", "number", "boolean", "json"]
PolicyState = Literal["draft", "running", "paused", "completed"]
PolicyKind = Literal["static", "adaptive"]
ResolutionMode = Literal["bundle", "edge"]

Context = Dict[str, Any]


class CamelModel(BaseModel):
    """Base model using camelCase aliases on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> Dict[str, Any]:
        """Dump using wire aliases, omitting top-level fields that are None.

        Nested values are kept as-is so null entries inside maps and lists
        survive the round trip.
        """
        return {key: value for key, value in self.model_dump(by_alias=True).items() if value is not None}


# =============================================================================
# Config bundle
# =============================================================================


class BundleHashingConfig(CamelModel):
    """Hashing configuration for deterministic bucket assignment."""
    unit_key: str
    bucket_count: int = Field(..., gt=0)


class BundleParameter(CamelModel):
    """Parameter definition with its default and layer membership."""
    key: str
    type: ParameterType = "string"
    default: Any = None
    layer_id: str
    namespace: str = ""


class BundleAllocation(CamelModel):
    """One variant of a policy."""
    id: str
    name: str
    bucket_range: Tuple[int, int] = (0, 0)
    overrides: Dict[str, Any] = Field(default_factory=dict)


class BundleCondition(CamelModel):
    """Context predicate; conditions on a policy are AND-ed."""
    field: str
    op: str
    value: Any = None
    values: Any = None

    @property
    def has_value(self) -> bool:
        """Whether the bundle supplied a ``value`` operand (null included)."""
        return "value" in self.model_fields_set


class BundleContextLogging(CamelModel):
    """Context fields a policy allows to be logged with its decisions."""
    allowed_fields: List[str] = Field(default_factory=list)


class DynamicAllocations(CamelModel):
    """Allocation count read from the context instead of a fixed list."""
    count_key: str


class EntityConfig(CamelModel):
    """Per-entity resolution settings of an adaptive policy."""
    entity_keys: List[str]
    resolution_mode: ResolutionMode
    edge_timeout_ms: Optional[int] = None
    dynamic_allocations: Optional[DynamicAllocations] = None


class EligibleBucketRange(CamelModel):
    """Inclusive bucket sub-range a policy is restricted to."""
    start: int
    end: int

    def contains(self, bucket: int) -> bool:
        return self.start <= bucket <= self.end


class BundlePolicy(CamelModel):
    """Experiment definition: eligibility plus allocations."""
    id: str
    state: PolicyState
    kind: PolicyKind = "static"
    allocations: List[BundleAllocation] = Field(default_factory=list)
    conditions: List[BundleCondition] = Field(default_factory=list)
    state_version: Optional[str] = None
    context_logging: Optional[BundleContextLogging] = None
    entity_config: Optional[EntityConfig] = None
    eligible_bucket_range: Optional[EligibleBucketRange] = None

    @property
    def is_running(self) -> bool:
        return self.state == "running"


class BundleLayer(CamelModel):
    """Partition of the bucket space with its ordered policies."""
    id: str
    policies: List[BundlePolicy] = Field(default_factory=list)


class EntityWeights(CamelModel):
    """Learned selection weights for one entity."""
    entity_id: str = ""
    weights: List[float]
    computed_at: Optional[str] = None


class BundleEntityPolicyState(CamelModel):
    """Per-policy entity state shipped for bundle-mode resolution."""
    global_weights: Optional[EntityWeights] = Field(default=None, alias="_global")
    entities: Dict[str, EntityWeights] = Field(default_factory=dict)


class ConfigBundle(CamelModel):
    """Versioned configuration snapshot for one project/environment."""
    version: str
    org_id: str
    project_id: str
    env: str
    hashing: BundleHashingConfig
    parameters: List[BundleParameter] = Field(default_factory=list)
    layers: List[BundleLayer] = Field(default_factory=list)
    entity_state: Optional[Dict[str, BundleEntityPolicyState]] = None

    @model_validator(mode="after")
    def _check_references(self) -> "ConfigBundle":
        seen = set()
        layer_ids = {layer.id for layer in self.layers}
        for param in self.parameters:
            if param.key in seen:
                raise ValueError(f"Duplicate parameter key: {param.key}")
            seen.add(param.key)
            if param.layer_id not in layer_ids:
                raise ValueError(f"Parameter {param.key} references unknown layer {param.layer_id}")
        return self

    def find_policy(self, policy_id: str) -> Optional[BundlePolicy]:
        """Find a policy by id across all layers."""
        for layer in self.layers:
            for policy in layer.policies:
                if policy.id == policy_id:
                    return policy
        return None


# =============================================================================
# Decisions
# =============================================================================


class LayerResolution(CamelModel):
    """Per-layer resolution record used for exposure and attribution."""
    layer_id: str
    bucket: int
    policy_id: Optional[str] = None
    allocation_id: Optional[str] = None
    allocation_name: Optional[str] = None
    attribution_only: Optional[bool] = None


class DecisionMetadata(CamelModel):
    """Metadata about a decision."""
    timestamp: str
    unit_key_value: str
    layers: List[LayerResolution] = Field(default_factory=list)
    filtered_context: Optional[Context] = None


class DecisionResult(CamelModel):
    """Trackable decision with its assignments."""
    decision_id: str
    assignments: Dict[str, Any]
    metadata: DecisionMetadata


class EdgeResult(CamelModel):
    """Pre-computed per-entity result supplied to the resolution engine."""
    allocation_index: int
    entity_id: str


# =============================================================================
# Wire contract
# =============================================================================


class EdgeDecideBody(CamelModel):
    """Body of POST /v1/decide/{policyId}."""
    entity_id: str
    unit_key_value: str
    allocation_count: Optional[int] = None
    context: Optional[Context] = None


class EdgeDecideRequest(EdgeDecideBody):
    """Per-entity decision request, scoped to a policy."""
    policy_id: str


class EdgeDecideResponse(CamelModel):
    """Per-entity decision computed by the decisions service."""
    allocation_index: int
    allocation_name: str
    weights: List[float] = Field(default_factory=list)
    cold_start: bool = False
    state_version: Optional[str] = None


class EdgeBatchDecideRequest(CamelModel):
    """Body of POST /v1/decide/batch."""
    requests: List[EdgeDecideRequest]


class EdgeBatchDecideResponse(CamelModel):
    """Index-aligned batch responses."""
    responses: List[Optional[EdgeDecideResponse]]


class ServerResolveRequest(CamelModel):
    """Body of POST /v1/resolve."""
    context: Context
    env: Optional[str] = None
    parameters: Optional[List[str]] = None


class ServerResolveResponse(CamelModel):
    """Full server-side resolution result."""
    decision_id: str
    assignments: Dict[str, Any]
    metadata: DecisionMetadata
    state_version: str
    suggested_refresh_ms: Optional[int] = None


class TrackAttribution(CamelModel):
    """Experiment a tracked outcome is attributed to."""
    layer_id: str
    policy_id: str
    allocation_name: str


class ExposureEvent(CamelModel):
    """A unit being shown the allocation of one layer."""
    decision_id: str
    unit_key_value: str
    layer_id: str
    policy_id: str
    allocation_name: str
    timestamp: str
