"""Shared data contracts for the estimator and the job runner.

Static analysis, the isolated worker, and the HTTP layer all consume and
produce these types. This is the single source of truth for what data flows
between stages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath
from typing import Any


WASM_PAGE_SIZE = 65536
MIB = 1024 * 1024


# ── Binary size ─────────────────────────────────────────────

class SizeCategory(str, Enum):
    """Coarse size bucket of a compiled binary."""
    TINY = "TINY"
    SMALL = "SMALL"
    MEDIUM = "MEDIUM"
    LARGE = "LARGE"
    VERY_LARGE = "VERY_LARGE"
    HUGE = "HUGE"

    @property
    def label(self) -> str:
        return _SIZE_LABELS[self]


_SIZE_LABELS = {
    SizeCategory.TINY: "Tiny (< 50KB)",
    SizeCategory.SMALL: "Small (50-100KB)",
    SizeCategory.MEDIUM: "Medium (100-200KB)",
    SizeCategory.LARGE: "Large (200-500KB)",
    SizeCategory.VERY_LARGE: "Very Large (500KB-1MB)",
    SizeCategory.HUGE: "Huge (> 1MB)",
}


@dataclass(frozen=True)
class BinaryMetrics:
    """File length of one binary artifact and its size bucket."""
    size_bytes: int
    size_category: SizeCategory

    @property
    def size_mb(self) -> float:
        return self.size_bytes / MIB


# ── Static features ─────────────────────────────────────────

@dataclass
class StaticFeatureSet:
    """Memory-relevant declarations found in one module.

    Every field defaults to zero: a declaration that is not present is not
    an error.
    """
    linear_memory_pages: int = 0
    stack_pointer_offset_bytes: int = 0
    function_table_sizes: list[int] = field(default_factory=list)
    function_count: int = 0
    data_section_count: int = 0
    global_count: int = 0

    @property
    def linear_memory_bytes(self) -> int:
        return self.linear_memory_pages * WASM_PAGE_SIZE

    @property
    def total_function_references(self) -> int:
        return sum(self.function_table_sizes)


# ── Classification / estimate ───────────────────────────────

class WorkloadClass(str, Enum):
    """Heuristic workload category used to size the memory buffer."""
    ML_INFERENCE = "ML_INFERENCE"
    MATRIX_OPERATIONS = "MATRIX_OPERATIONS"
    SIMPLE_COMPUTATION = "SIMPLE_COMPUTATION"
    UNCLASSIFIED = "UNCLASSIFIED"

    @property
    def label(self) -> str:
        return _WORKLOAD_LABELS[self]


_WORKLOAD_LABELS = {
    WorkloadClass.ML_INFERENCE: "ML Inference",
    WorkloadClass.MATRIX_OPERATIONS: "Matrix Operations",
    WorkloadClass.SIMPLE_COMPUTATION: "Simple Computation",
    WorkloadClass.UNCLASSIFIED: "Unclassified",
}


@dataclass(frozen=True)
class MemoryEstimate:
    """Minimum and peak memory for one binary.

    Static estimates always have peak_bytes == minimum_bytes + buffer_bytes
    with buffer_bytes > 0. Once reconciled with a measurement,
    execution_confirmed is True and the numbers are the measured ones.
    """
    minimum_bytes: int
    peak_bytes: int
    buffer_bytes: int
    basis_class: WorkloadClass
    execution_confirmed: bool = False

    def to_dict(self) -> dict:
        return {
            "minimum_bytes": self.minimum_bytes,
            "peak_bytes": self.peak_bytes,
            "buffer_bytes": self.buffer_bytes,
            "basis_class": self.basis_class.value,
            "execution_confirmed": self.execution_confirmed,
        }


@dataclass
class StaticAnalysis:
    """Everything the static pipeline produced for one binary."""
    binary_path: str
    metrics: BinaryMetrics
    features: StaticFeatureSet
    workload: WorkloadClass
    estimate: MemoryEstimate
    feature_source: str = "disassembly"   # "module" | "disassembly"


# ── Job handoff ─────────────────────────────────────────────

@dataclass
class TaskDescriptor:
    """Parameters of one submitted job, handed to the worker via a file."""
    task_id: int
    binary_name: str
    function_name: str
    payload: str = ""
    payload_compressed: bool = False
    model_folder_name: str = ""
    compiled_module_file: str = ""
    disassembly_file: str = ""

    def __post_init__(self):
        stem = PurePath(self.binary_name).stem
        if not self.compiled_module_file:
            self.compiled_module_file = f"{stem}.cwasm"
        if not self.disassembly_file:
            self.disassembly_file = f"{stem}.wat"


# ── Measurement / result ────────────────────────────────────

@dataclass(frozen=True)
class MemorySample:
    """Resident memory sampled around a single job invocation.

    peak_bytes is max(initial, final): an endpoint proxy, not a
    continuous peak.
    """
    initial_bytes: int
    final_bytes: int
    peak_bytes: int
    elapsed_ms: int

    def to_dict(self) -> dict:
        return {
            "initial_bytes": self.initial_bytes,
            "final_bytes": self.final_bytes,
            "peak_bytes": self.peak_bytes,
            "elapsed_ms": self.elapsed_ms,
        }

    @classmethod
    def from_dict(cls, data: dict) -> MemorySample:
        return cls(
            initial_bytes=int(data["initial_bytes"]),
            final_bytes=int(data["final_bytes"]),
            peak_bytes=int(data["peak_bytes"]),
            elapsed_ms=int(data["elapsed_ms"]),
        )


class JobStatus(str, Enum):
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


@dataclass
class JobResult:
    """Outcome of one dispatched job, success or failure."""
    task_id: int
    status: JobStatus
    outputs: Any = None
    sample: MemorySample | None = None
    estimate: MemoryEstimate | None = None
    fallback_used: bool = False
    exit_code: int | None = None
    error: str | None = None
    stdout: str = ""
    stderr: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status == JobStatus.SUCCEEDED

    def to_dict(self) -> dict:
        return {
            "task_id": self.task_id,
            "status": self.status.value,
            "outputs": self.outputs,
            "sample": self.sample.to_dict() if self.sample else None,
            "estimate": self.estimate.to_dict() if self.estimate else None,
            "fallback_used": self.fallback_used,
            "exit_code": self.exit_code,
            "error": self.error,
        }
