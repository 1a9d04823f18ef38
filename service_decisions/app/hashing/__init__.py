"""
Hashing package.

Provides the FNV-1a hash primitive and the bucketing helpers built on it.
Output must be bit-identical to every other SDK binding; do not change the
hash input format or the modulo reduction.
"""

from .fnv1a import fnv1a, FNV_OFFSET_BASIS, FNV_PRIME
from .bucket import (
    compute_bucket,
    is_in_bucket_range,
    find_matching_allocation,
    percentage_to_bucket_range,
    create_bucket_ranges,
)

__all__ = [
    "fnv1a",
    "FNV_OFFSET_BASIS",
    "FNV_PRIME",
    "compute_bucket",
    "is_in_bucket_range",
    "find_matching_allocation",
    "percentage_to_bucket_range",
    "create_bucket_ranges",
]
