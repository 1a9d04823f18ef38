"""
Bucket computation.

The bucket for a unit in a layer is ``fnv1a(unit + ":" + layer) % bucket_count``,
so the same unit always lands in the same bucket for a given layer while
different layers bucket independently.
"""

import math
from typing import List, Optional, Sequence, Tuple, TypeVar

from .fnv1a import fnv1a

BucketRange = Tuple[int, int]
T = TypeVar("T")


def compute_bucket(unit_key_value: str, layer_id: str, bucket_count: int) -> int:
    """Compute the bucket in ``[0, bucket_count)`` for a unit and layer."""
    return fnv1a(f"{unit_key_value}:{layer_id}") % bucket_count


def is_in_bucket_range(bucket: int, bucket_range: Sequence[int]) -> bool:
    """Check whether a bucket falls in an inclusive ``[start, end]`` range."""
    return bucket_range[0] <= bucket <= bucket_range[1]


def find_matching_allocation(bucket: int, allocations: Sequence[T]) -> Optional[T]:
    """Return the first allocation whose bucket range contains ``bucket``.

    Ranges need not cover the whole bucket space; a gap means no
    allocation applies and ``None`` is returned.
    """
    for allocation in allocations:
        if is_in_bucket_range(bucket, allocation.bucket_range):
            return allocation
    return None


def percentage_to_bucket_range(percentage: float, bucket_count: int, start_bucket: int = 0) -> BucketRange:
    """Convert a traffic percentage (0-100) to a bucket range starting at ``start_bucket``."""
    buckets_needed = math.floor((percentage / 100) * bucket_count)
    end_bucket = min(start_bucket + buckets_needed - 1, bucket_count - 1)
    return (start_bucket, end_bucket)


def create_bucket_ranges(percentages: Sequence[float], bucket_count: int) -> List[BucketRange]:
    """Create contiguous, non-overlapping bucket ranges for a list of percentages."""
    ranges: List[BucketRange] = []
    current_bucket = 0

    for percentage in percentages:
        if percentage <= 0:
            continue

        buckets_needed = math.floor((percentage / 100) * bucket_count)
        if buckets_needed > 0:
            end_bucket = current_bucket + buckets_needed - 1
            ranges.append((current_bucket, end_bucket))
            current_bucket = end_bucket + 1

    return ranges
