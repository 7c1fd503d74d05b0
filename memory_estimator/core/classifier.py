"""Workload classification: an ordered predicate chain, first match wins.

The MATRIX_OPERATIONS and SIMPLE_COMPUTATION ranges overlap (a 180KB binary
with 150 functions satisfies both size ranges); evaluation order resolves it.
Keep the order when changing thresholds.
"""

from __future__ import annotations

from typing import Callable

from memory_estimator.models.types import BinaryMetrics, StaticFeatureSet, WorkloadClass


def is_ml_inference(size: int, features: StaticFeatureSet) -> bool:
    # Neural-network components: moderate size, many functions, several data segments.
    functions = features.function_count
    return (
        size > 600_000
        or (functions > 500 and features.data_section_count > 2)
        or (size > 300_000 and functions > 400)
        or (size > 200_000 and functions > 500)
    )


def is_matrix_operations(size: int, features: StaticFeatureSet) -> bool:
    return 150_000 < size <= 600_000 and 200 < features.function_count <= 500


def is_simple_computation(size: int, features: StaticFeatureSet) -> bool:
    return size <= 150_000 or features.function_count <= 200


WORKLOAD_RULES: tuple[tuple[WorkloadClass, Callable[[int, StaticFeatureSet], bool]], ...] = (
    (WorkloadClass.ML_INFERENCE, is_ml_inference),
    (WorkloadClass.MATRIX_OPERATIONS, is_matrix_operations),
    (WorkloadClass.SIMPLE_COMPUTATION, is_simple_computation),
)


def classify_workload(metrics: BinaryMetrics, features: StaticFeatureSet) -> WorkloadClass:
    for workload, predicate in WORKLOAD_RULES:
        if predicate(metrics.size_bytes, features):
            return workload
    return WorkloadClass.UNCLASSIFIED
