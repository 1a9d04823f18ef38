"""
Resolution package.

Computes parameter assignments and layer attribution metadata from a
config bundle and a caller context. Everything here is a pure function of
its inputs: no shared state, safe to call concurrently against the same
bundle.
"""

from .engine import (
    ResolutionResult,
    get_unit_key_value,
    resolve_internal,
    resolve_parameters,
    filter_context,
    decide,
)
from .entity import (
    EntitySelection,
    WeightSource,
    stringify_value,
    build_entity_id,
    create_uniform_weights,
    get_entity_weights,
    selection_seed,
    weighted_selection,
    dynamic_allocation_count,
    allocation_count_for,
    resolve_per_entity_policy,
)
