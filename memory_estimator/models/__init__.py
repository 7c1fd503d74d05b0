# Module: models
# Depends on: (none — leaf module)
#
# Shared data contracts used by the static estimator, the worker and the server.

from memory_estimator.models.types import (
    WASM_PAGE_SIZE,
    MIB,
    SizeCategory,
    BinaryMetrics,
    StaticFeatureSet,
    WorkloadClass,
    MemoryEstimate,
    StaticAnalysis,
    TaskDescriptor,
    MemorySample,
    JobStatus,
    JobResult,
)
from memory_estimator.models.events import JobEvent, EventType, EventEmitter, json_line_sink
