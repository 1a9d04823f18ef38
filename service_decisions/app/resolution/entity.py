"""
Per-entity resolution helpers.

Adaptive policies with an entity config select an allocation per entity
(a product, a user, any combination of context keys) using learned weights
shipped in the bundle. Selection is a deterministic weighted draw seeded by
entity, unit and policy, so it is reproducible on every platform.
"""

import math
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..hashing import fnv1a
from ..models import BundleAllocation, BundlePolicy, ConfigBundle

# Granularity of the pseudo-random draw. Changing it reassigns live entities.
SELECTION_RESOLUTION = 10000

# Integers above this are doubles in the JavaScript bindings
MAX_SAFE_INTEGER = 2 ** 53 - 1


class WeightSource(str, Enum):
    """Where the weight vector used for a selection came from."""
    ENTITY = "entity"
    GLOBAL = "global"
    UNIFORM = "uniform"


@dataclass
class EntitySelection:
    """Result of a per-entity selection."""
    allocation: BundleAllocation
    index: int
    entity_id: str


def _format_number(value: float) -> str:
    """Shortest round-trip digits laid out in JavaScript number notation.

    Fixed notation for magnitudes in [1e-6, 1e21), exponent form otherwise.

    >>> _format_number(1.5e-07)
    '1.5e-7'
    >>> _format_number(1e21)
    '1e+21'
    """
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"

    sign = "-" if value < 0 else ""
    _, digit_tuple, exponent = Decimal(repr(abs(value))).as_tuple()
    digits = "".join(str(d) for d in digit_tuple)
    point = exponent + len(digits)
    digits = digits.rstrip("0")
    length = len(digits)

    if length <= point <= 21:
        text = digits + "0" * (point - length)
    elif 0 < point <= 21:
        text = digits[:point] + "." + digits[point:]
    elif -6 < point <= 0:
        text = "0." + "0" * -point + digits
    else:
        mantissa = digits if length == 1 else digits[0] + "." + digits[1:]
        power = point - 1
        text = f"{mantissa}e{'+' if power >= 0 else '-'}{abs(power)}"
    return sign + text


def stringify_value(value: Any) -> str:
    """Render a context value the way every SDK binding does.

    Follows JavaScript string conversion: booleans are lower-case, numbers
    use JavaScript notation, lists are comma-joined with nulls as empty
    strings and mappings become ``[object Object]``.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        if abs(value) <= MAX_SAFE_INTEGER:
            return str(value)
        return _format_number(float(value))
    if isinstance(value, float):
        return _format_number(value)
    if isinstance(value, (list, tuple)):
        return ",".join("" if item is None else stringify_value(item) for item in value)
    if isinstance(value, dict):
        return "[object Object]"
    return str(value)


def build_entity_id(entity_keys: Sequence[str], context: Dict[str, Any]) -> Optional[str]:
    """Join the context values of ``entity_keys`` with ``_``.

    Returns ``None`` if any key is missing or null.
    """
    parts: List[str] = []
    for key in entity_keys:
        value = context.get(key)
        if value is None:
            return None
        parts.append(stringify_value(value))
    return "_".join(parts)


def create_uniform_weights(count: int) -> List[float]:
    if count <= 0:
        return []
    return [1 / count] * count


def get_entity_weights(
    bundle: ConfigBundle,
    policy_id: str,
    entity_id: str,
    allocation_count: int
) -> Tuple[List[float], WeightSource]:
    """Pick the weight vector for an entity.

    Entity-specific weights win, then the policy's global prior, then a
    uniform split. A vector is only used if its length matches the
    allocation count.
    """
    policy_state = (bundle.entity_state or {}).get(policy_id)
    if policy_state is None:
        return create_uniform_weights(allocation_count), WeightSource.UNIFORM

    entity_weights = policy_state.entities.get(entity_id)
    if entity_weights and len(entity_weights.weights) == allocation_count:
        return entity_weights.weights, WeightSource.ENTITY

    global_weights = policy_state.global_weights
    if global_weights and len(global_weights.weights) == allocation_count:
        return global_weights.weights, WeightSource.GLOBAL

    return create_uniform_weights(allocation_count), WeightSource.UNIFORM


def selection_seed(entity_id: str, unit_key_value: str, policy_id: str) -> str:
    return f"{entity_id}:{unit_key_value}:{policy_id}"


def weighted_selection(weights: Sequence[float], seed: str) -> int:
    """Deterministically select an index from a weight vector.

    The draw is ``(fnv1a(seed) % 10000) / 10000``; the first index whose
    running sum exceeds it is returned, falling back to the last index.
    """
    if len(weights) <= 1:
        return 0

    draw = (fnv1a(seed) % SELECTION_RESOLUTION) / SELECTION_RESOLUTION

    cumulative = 0.0
    for index, weight in enumerate(weights):
        cumulative += weight
        if draw < cumulative:
            return index

    return len(weights) - 1


def dynamic_allocation(policy_id: str, index: int) -> BundleAllocation:
    """Synthetic allocation for an index of a dynamic-allocation policy."""
    return BundleAllocation(id=f"{policy_id}_dynamic_{index}", name=str(index))


def dynamic_allocation_count(policy: BundlePolicy, context: Dict[str, Any]) -> Optional[int]:
    """Read the live allocation count of a dynamic-allocation policy.

    Returns ``None`` unless the count key holds a positive number.
    """
    entity_config = policy.entity_config
    if entity_config is None or entity_config.dynamic_allocations is None:
        return None
    count = context.get(entity_config.dynamic_allocations.count_key)
    if isinstance(count, bool) or not isinstance(count, (int, float)) or count <= 0:
        return None
    return math.floor(count)


def allocation_count_for(policy: BundlePolicy, context: Dict[str, Any]) -> Optional[int]:
    """Allocation count of a per-entity policy, fixed or dynamic."""
    if policy.entity_config is not None and policy.entity_config.dynamic_allocations is not None:
        return dynamic_allocation_count(policy, context)
    return len(policy.allocations)


def resolve_per_entity_policy(
    bundle: ConfigBundle,
    policy: BundlePolicy,
    context: Dict[str, Any],
    unit_key_value: str
) -> Optional[EntitySelection]:
    """Resolve a bundle-mode per-entity policy, or ``None`` if it cannot resolve."""
    entity_config = policy.entity_config
    if entity_config is None:
        return None

    entity_id = build_entity_id(entity_config.entity_keys, context)
    if entity_id is None:
        return None

    allocation_count = allocation_count_for(policy, context)
    if not allocation_count:
        return None

    weights, _ = get_entity_weights(bundle, policy.id, entity_id, allocation_count)
    index = weighted_selection(weights, selection_seed(entity_id, unit_key_value, policy.id))

    if entity_config.dynamic_allocations is not None:
        allocation = dynamic_allocation(policy.id, index)
    else:
        allocation = policy.allocations[index]

    return EntitySelection(allocation=allocation, index=index, entity_id=entity_id)
