# Module: core
# Depends on: models (no network, no engine calls at import time)
#
# Static estimation pipeline + process isolation + memory measurement.

from memory_estimator.core.errors import (
    EstimatorError,
    BinaryReadError,
    ParseError,
    UnsupportedBinaryError,
    DescriptorError,
    ScratchCollisionError,
    EngineError,
    DisassemblerUnavailableError,
)
from memory_estimator.core.binary_size import analyze_binary_size, categorize_binary_size
from memory_estimator.core.feature_extractor import extract_features, ensure_disassembly
from memory_estimator.core.wasm_reader import extract_features_from_module, read_module_layout
from memory_estimator.core.classifier import classify_workload
from memory_estimator.core.estimator import (
    build_memory_estimate,
    calculate_memory_estimate,
    format_memory_report,
)
from memory_estimator.core.descriptor import read_descriptor, write_descriptor, decode_payload
from memory_estimator.core.isolation_interface import IsolationBackend, WorkerResult
from memory_estimator.core.isolation import SubprocessIsolation, build_worker_env, THREAD_PINNING_ENV
from memory_estimator.core.monitor import get_current_memory_usage, run_with_memory_monitoring
from memory_estimator.core.reconciliation import reconcile
from memory_estimator.core.dispatcher import dispatch_task
