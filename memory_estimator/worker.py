"""
Worker — runs exactly one job inside a freshly spawned process.

Usage (spawned by SubprocessIsolation, not by hand):
    python -m memory_estimator.worker /tmp/wasm_task_<id>.json

Output contract:
  stdout  one JSON line: {"task_id", "status": "ok"|"error", "outputs",
          "sample", "process_status", "error"}
  stderr  JSON event lines (see models/events.py)
  exit    0 job succeeded, 1 job failed, 2 bad invocation or descriptor
"""

import asyncio
import json
import os
import sys

from memory_estimator.config import Settings
from memory_estimator.core.descriptor import decode_payload, read_descriptor
from memory_estimator.core.errors import DescriptorError, EstimatorError
from memory_estimator.core.monitor import read_process_status, run_with_memory_monitoring
from memory_estimator.models.events import EventEmitter, EventType, json_line_sink
from memory_estimator.models.types import MIB, TaskDescriptor

EXIT_OK = 0
EXIT_JOB_FAILED = 1
EXIT_USAGE = 2


async def run_job(
    descriptor: TaskDescriptor,
    settings: Settings,
    engine,
    emitter: EventEmitter,
) -> dict:
    """Run the job under the memory monitor and return the result record."""
    task_id = descriptor.task_id
    result = {
        "task_id": task_id,
        "status": "error",
        "outputs": None,
        "sample": None,
        "process_status": {},
        "error": None,
    }

    try:
        payload = decode_payload(descriptor)
    except DescriptorError as e:
        emitter.error("worker", str(e), task_id=task_id)
        result["error"] = str(e)
        return result

    module_path = settings.module_path(descriptor.compiled_module_file)
    if not module_path.exists():
        module_path = settings.module_path(descriptor.binary_name)
    mount_dir = settings.model_mount(descriptor.model_folder_name)
    emitter.log(
        "worker",
        f"Worker pid {os.getpid()}: running {descriptor.function_name} "
        f"from {module_path}",
        task_id=task_id,
        data={"mount_dir": str(mount_dir) if mount_dir else None},
    )

    try:
        outputs, sample = await run_with_memory_monitoring(
            lambda: engine.invoke(module_path, descriptor.function_name, payload, mount_dir)
        )
    except EstimatorError as e:
        emitter.error("worker", f"Job failed: {e}", task_id=task_id)
        result["error"] = str(e)
        result["process_status"] = read_process_status()
        return result

    emitter.complete(
        EventType.MEASUREMENT_COMPLETE, "worker",
        f"Execution time {sample.elapsed_ms} ms, "
        f"peak {sample.peak_bytes / MIB:.2f} MB",
        task_id=task_id,
        data=sample.to_dict(),
    )

    result.update(
        status="ok",
        outputs=outputs,
        sample=sample.to_dict(),
        process_status=read_process_status(),
    )
    return result


def main(argv=None, engine=None, stdout=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    out = sys.stdout if stdout is None else stdout

    emitter = EventEmitter()
    emitter.on_event(json_line_sink(sys.stderr))

    if len(argv) != 1:
        emitter.error("worker", "usage: python -m memory_estimator.worker <task-file>")
        return EXIT_USAGE

    try:
        descriptor = read_descriptor(argv[0])
    except DescriptorError as e:
        emitter.error("worker", str(e))
        return EXIT_USAGE

    if engine is None:
        from memory_estimator.integrations.wasm_engine import WasmtimeEngine
        engine = WasmtimeEngine()

    result = asyncio.run(run_job(descriptor, Settings.from_env(), engine, emitter))
    print(json.dumps(result, default=str), file=out, flush=True)
    return EXIT_OK if result["status"] == "ok" else EXIT_JOB_FAILED


if __name__ == "__main__":
    sys.exit(main())
