"""Reconciliation of the static estimate with a measured sample.

All-or-nothing: a successful run replaces the estimate with measured
numbers, a failed run keeps the static estimate untouched. The two are never
averaged.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from memory_estimator.models.types import MemoryEstimate, MemorySample


def reconcile(
    estimate: Optional[MemoryEstimate],
    sample: Optional[MemorySample],
    succeeded: bool,
) -> tuple[Optional[MemoryEstimate], bool]:
    """Return (estimate to report, fallback_used)."""
    if not succeeded or sample is None:
        return estimate, True

    if estimate is None:
        # No static basis to relabel; the measurement stands on its own.
        return None, False

    return replace(
        estimate,
        minimum_bytes=sample.initial_bytes,
        peak_bytes=sample.peak_bytes,
        buffer_bytes=sample.peak_bytes - sample.initial_bytes,
        execution_confirmed=True,
    ), False
