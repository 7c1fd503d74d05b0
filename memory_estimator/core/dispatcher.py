"""
Dispatcher — the parent-side flow for one submitted job.

    ensure disassembly cache -> static estimate -> isolated worker
        -> parse result line -> reconcile -> JobResult

Static analysis failures never stop the job: they are logged and the result
carries estimate=None. Worker failures are returned as a FAILED JobResult
with the static estimate kept (fallback_used=True).
"""

from __future__ import annotations

import json
import os
from typing import Optional

from memory_estimator.config import Settings
from memory_estimator.core.errors import (
    BinaryReadError,
    DisassemblerUnavailableError,
    EngineError,
    EstimatorError,
)
from memory_estimator.core.descriptor import validate_descriptor
from memory_estimator.core.estimator import build_memory_estimate
from memory_estimator.core.feature_extractor import ensure_disassembly
from memory_estimator.core.isolation import SubprocessIsolation
from memory_estimator.core.isolation_interface import IsolationBackend, WorkerResult
from memory_estimator.core.reconciliation import reconcile
from memory_estimator.models.events import EventEmitter, EventType
from memory_estimator.models.types import (
    JobResult,
    JobStatus,
    MemoryEstimate,
    MemorySample,
    TaskDescriptor,
)


def parse_worker_output(stdout: str) -> Optional[dict]:
    """Last JSON object line printed by the worker, or None."""
    for line in reversed(stdout.splitlines()):
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(record, dict):
            return record
    return None


def _static_estimate(
    descriptor: TaskDescriptor,
    settings: Settings,
    emitter: EventEmitter,
) -> Optional[MemoryEstimate]:
    task_id = descriptor.task_id
    wasm_path = settings.module_path(descriptor.binary_name)
    compiled_path = settings.module_path(descriptor.compiled_module_file)
    disassembly_path = settings.module_path(descriptor.disassembly_file)

    try:
        if ensure_disassembly(wasm_path, disassembly_path):
            emitter.log("dispatcher", f"Wrote disassembly {disassembly_path}", task_id=task_id)
    except (DisassemblerUnavailableError, EngineError, BinaryReadError) as e:
        emitter.log("dispatcher", f"Disassembly unavailable: {e}", task_id=task_id)

    sized_path = compiled_path if compiled_path.exists() else wasm_path
    try:
        analysis = build_memory_estimate(
            sized_path,
            module_path=wasm_path,
            disassembly_path=disassembly_path if disassembly_path.exists() else None,
            feature_source=settings.feature_source,
            emitter=emitter,
            task_id=task_id,
        )
    except EstimatorError as e:
        emitter.error("dispatcher", f"Static analysis failed: {e}", task_id=task_id)
        return None
    return analysis.estimate


def _sample_from(record: Optional[dict]) -> Optional[MemorySample]:
    if not record or not isinstance(record.get("sample"), dict):
        return None
    try:
        return MemorySample.from_dict(record["sample"])
    except (KeyError, TypeError, ValueError):
        return None


def dispatch_task(
    descriptor: TaskDescriptor,
    settings: Optional[Settings] = None,
    isolation: Optional[IsolationBackend] = None,
    emitter: Optional[EventEmitter] = None,
) -> JobResult:
    """Estimate, run and reconcile one job. Blocks until the worker exits.

    Raises DescriptorError for names that are not plain file names and
    ScratchCollisionError if a job with the same task_id is in flight.
    """
    validate_descriptor(descriptor)
    settings = settings or Settings.from_env()
    emitter = emitter or EventEmitter()
    isolation = isolation or SubprocessIsolation(
        settings.scratch_dir,
        timeout=settings.worker_timeout,
        base_env={**os.environ, **settings.to_env()},
        emitter=emitter,
    )
    task_id = descriptor.task_id

    estimate = _static_estimate(descriptor, settings, emitter)

    worker: WorkerResult = isolation.run(descriptor)
    record = parse_worker_output(worker.stdout)
    sample = _sample_from(record)

    succeeded = (
        worker.success
        and record is not None
        and record.get("status") == "ok"
        and sample is not None
    )
    final_estimate, fallback_used = reconcile(estimate, sample, succeeded)

    error = None
    if not succeeded:
        if record and record.get("error"):
            error = str(record["error"])
        elif worker.error:
            error = worker.error
        else:
            error = "Worker produced no result"

    emitter.complete(
        EventType.RECONCILED, "dispatcher",
        "Static estimate kept (fallback)" if fallback_used
        else "Estimate replaced by measurement",
        task_id=task_id,
        data={
            "fallback_used": fallback_used,
            "estimate": final_estimate.to_dict() if final_estimate else None,
        },
    )

    return JobResult(
        task_id=task_id,
        status=JobStatus.SUCCEEDED if succeeded else JobStatus.FAILED,
        outputs=record.get("outputs") if succeeded else None,
        sample=sample if succeeded else None,
        estimate=final_estimate,
        fallback_used=fallback_used,
        exit_code=worker.exit_code,
        error=error,
        stdout=worker.stdout,
        stderr=worker.stderr,
    )
