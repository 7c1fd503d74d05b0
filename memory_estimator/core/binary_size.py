"""Binary size analysis: file length -> size category."""

import os

from memory_estimator.core.errors import BinaryReadError
from memory_estimator.models.types import BinaryMetrics, SizeCategory


# Inclusive upper bounds, checked in order. Anything larger is HUGE.
SIZE_BOUNDARIES = (
    (50_000, SizeCategory.TINY),
    (100_000, SizeCategory.SMALL),
    (200_000, SizeCategory.MEDIUM),
    (500_000, SizeCategory.LARGE),
    (1_000_000, SizeCategory.VERY_LARGE),
)


def categorize_binary_size(size_bytes: int) -> SizeCategory:
    for upper, category in SIZE_BOUNDARIES:
        if size_bytes <= upper:
            return category
    return SizeCategory.HUGE


def analyze_binary_size(path) -> BinaryMetrics:
    """Stat a binary and bucket its size. Raises BinaryReadError."""
    try:
        size_bytes = os.stat(path).st_size
    except OSError as e:
        raise BinaryReadError(path, e) from e
    return BinaryMetrics(
        size_bytes=size_bytes,
        size_category=categorize_binary_size(size_bytes),
    )
