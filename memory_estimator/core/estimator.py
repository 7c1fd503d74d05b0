"""Static memory estimation.

Exports:
    calculate_memory_estimate(metrics, features, workload) -> MemoryEstimate
    buffer_for(metrics, features, workload) -> int
    build_memory_estimate(binary_path, ...) -> StaticAnalysis
    format_memory_report(analysis) -> str

The numbers are a planning heuristic, not a simulation:
    minimum = linear memory + stack pointer offset + 15% of the binary size
    peak    = minimum + a buffer chosen by workload class
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from memory_estimator.core.binary_size import analyze_binary_size
from memory_estimator.core.classifier import classify_workload
from memory_estimator.core.errors import BinaryReadError, UnsupportedBinaryError
from memory_estimator.core.feature_extractor import extract_features, read_disassembly
from memory_estimator.core.wasm_reader import extract_features_from_module
from memory_estimator.models.events import EventEmitter, EventType
from memory_estimator.models.types import (
    MIB,
    BinaryMetrics,
    MemoryEstimate,
    StaticAnalysis,
    StaticFeatureSet,
    WorkloadClass,
)


BINARY_OVERHEAD_RATIO = 0.15

ML_LARGE_BUFFER = 15 * MIB
ML_BUFFER = 12 * MIB
MATRIX_LARGE_BUFFER = 8 * MIB
MATRIX_BUFFER = 6 * MIB
SIMPLE_COMPLEX_BUFFER = 3 * MIB
SIMPLE_BUFFER = 2 * MIB
UNCLASSIFIED_BUFFER = 5 * MIB

EFFICIENT_PAGE_LIMIT = 32   # 2MB of linear memory


def buffer_for(metrics: BinaryMetrics, features: StaticFeatureSet,
               workload: WorkloadClass) -> int:
    size = metrics.size_bytes
    if workload == WorkloadClass.ML_INFERENCE:
        return ML_LARGE_BUFFER if size > 500_000 else ML_BUFFER
    if workload == WorkloadClass.MATRIX_OPERATIONS:
        return MATRIX_LARGE_BUFFER if size > 200_000 else MATRIX_BUFFER
    if workload == WorkloadClass.SIMPLE_COMPUTATION:
        return SIMPLE_COMPLEX_BUFFER if features.total_function_references > 50 else SIMPLE_BUFFER
    return UNCLASSIFIED_BUFFER


def calculate_memory_estimate(metrics: BinaryMetrics, features: StaticFeatureSet,
                              workload: WorkloadClass) -> MemoryEstimate:
    base = features.linear_memory_bytes + features.stack_pointer_offset_bytes
    overhead = int(metrics.size_bytes * BINARY_OVERHEAD_RATIO)
    minimum = base + overhead
    buffer = buffer_for(metrics, features, workload)
    return MemoryEstimate(
        minimum_bytes=minimum,
        peak_bytes=minimum + buffer,
        buffer_bytes=buffer,
        basis_class=workload,
    )


def _collect_features(
    module_path: Optional[Path],
    disassembly_path: Optional[Path],
    feature_source: str,
    emitter: Optional[EventEmitter],
    task_id: Optional[int],
) -> tuple[StaticFeatureSet, str]:
    if feature_source == "module" and module_path is not None and module_path.exists():
        try:
            data = module_path.read_bytes()
        except OSError as e:
            raise BinaryReadError(module_path, e) from e
        try:
            return extract_features_from_module(data), "module"
        except UnsupportedBinaryError as e:
            if emitter:
                emitter.log("estimator", f"{e}; using disassembly text", task_id=task_id)

    if disassembly_path is not None:
        return extract_features(read_disassembly(disassembly_path)), "disassembly"

    if emitter:
        emitter.log("estimator", "No module or disassembly to scan; features left at zero",
                    task_id=task_id)
    return StaticFeatureSet(), "none"


def build_memory_estimate(
    binary_path,
    module_path=None,
    disassembly_path=None,
    feature_source: str = "module",
    emitter: Optional[EventEmitter] = None,
    task_id: Optional[int] = None,
) -> StaticAnalysis:
    """Size, scan, classify and estimate one binary.

    binary_path is the artifact whose size is measured (usually the compiled
    module). module_path is the .wasm walked for declarations and defaults to
    binary_path. Raises BinaryReadError and ParseError.
    """
    binary_path = Path(binary_path)
    module_path = Path(module_path) if module_path is not None else binary_path
    disassembly_path = Path(disassembly_path) if disassembly_path is not None else None

    metrics = analyze_binary_size(binary_path)
    features, source = _collect_features(
        module_path, disassembly_path, feature_source, emitter, task_id
    )
    workload = classify_workload(metrics, features)

    if emitter:
        emitter.complete(
            EventType.ANALYSIS_COMPLETE, "estimator",
            f"{binary_path.name}: {metrics.size_category.label}, "
            f"{features.function_count} functions, workload {workload.label}",
            task_id=task_id,
            data={
                "size_bytes": metrics.size_bytes,
                "feature_source": source,
                "function_count": features.function_count,
                "data_section_count": features.data_section_count,
                "global_count": features.global_count,
                "stack_pointer_offset_bytes": features.stack_pointer_offset_bytes,
            },
        )

    estimate = calculate_memory_estimate(metrics, features, workload)

    if emitter:
        emitter.complete(
            EventType.ESTIMATE_COMPLETE, "estimator",
            f"Estimated {_mb(estimate.minimum_bytes)} MB minimum, "
            f"{_mb(estimate.peak_bytes)} MB peak",
            task_id=task_id,
            data=estimate.to_dict(),
        )

    return StaticAnalysis(
        binary_path=str(binary_path),
        metrics=metrics,
        features=features,
        workload=workload,
        estimate=estimate,
        feature_source=source,
    )


def _mb(value: int) -> str:
    return f"{value / MIB:.2f}"


def format_memory_report(analysis: StaticAnalysis) -> str:
    """Human-readable summary with sizing recommendations."""
    f = analysis.features
    e = analysis.estimate
    lines = [
        "Binary:",
        f"  - File size: {analysis.metrics.size_mb:.2f} MB",
        f"  - Size category: {analysis.metrics.size_category.label}",
        "Linear memory:",
        f"  - Pages: {f.linear_memory_pages} (64KB each)",
        f"  - Total: {_mb(f.linear_memory_bytes)} MB",
        "Stack memory:",
        f"  - Stack pointer offset: {_mb(f.stack_pointer_offset_bytes)} MB",
        "Function tables:",
    ]
    for i, size in enumerate(f.function_table_sizes):
        lines.append(f"  - Table {i}: {size} function references")
    lines += [
        f"  - Total function references: {f.total_function_references}",
        f"Workload: {analysis.workload.label}",
        f"  - Functions: {f.function_count}, data segments: {f.data_section_count}, "
        f"globals: {f.global_count}",
        "Memory summary:",
        f"  - Minimum memory: {_mb(e.minimum_bytes)} MB",
        f"  - Estimated peak: {_mb(e.peak_bytes)} MB",
        "Recommendations:",
    ]
    if analysis.workload == WorkloadClass.ML_INFERENCE:
        lines.append("  - ML workload detected - allocate extra memory for model operations")
    elif f.linear_memory_pages < EFFICIENT_PAGE_LIMIT:
        lines.append("  - Memory usage is efficient (under 2MB)")
    else:
        lines.append("  - Consider optimizing memory usage")
    lines.append(f"  - Allocate at least {_mb(e.peak_bytes)} MB for safe execution")
    return "\n".join(lines)
