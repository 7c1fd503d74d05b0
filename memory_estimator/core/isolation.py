"""
Process Isolation — one fresh worker process per job.

Numeric backends (OpenMP, MKL, OpenBLAS, ONNX Runtime, ...) read their
thread configuration once at process start and mostly ignore later changes.
Comparable memory measurements therefore need a new process whose
environment pins them to one thread before anything is loaded. The pinned
environment is built as a new mapping for the child; this process's own
os.environ is never modified.

Protocol for SubprocessIsolation.run():
  1. write the descriptor to a scratch file named after task_id
  2. spawn `python -m memory_estimator.worker <scratch file>`
  3. block until the worker exits, capturing stdout/stderr
  4. delete the scratch file (success or failure)
  5. return the raw exit status and streams
"""

import os
import subprocess
import sys
import time
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional, Sequence

from memory_estimator.core.descriptor import scratch_path_for, write_descriptor
from memory_estimator.core.isolation_interface import IsolationBackend, WorkerResult
from memory_estimator.models.events import EventEmitter, EventType
from memory_estimator.models.types import TaskDescriptor


THREAD_PINNING_ENV: Mapping[str, str] = MappingProxyType({
    # Thread pools of BLAS / OpenMP style libraries
    "OMP_NUM_THREADS": "1",
    "MKL_NUM_THREADS": "1",
    "NUMEXPR_NUM_THREADS": "1",
    "OPENBLAS_NUM_THREADS": "1",
    "BLIS_NUM_THREADS": "1",
    "VECLIB_MAXIMUM_THREADS": "1",
    "NUMBA_NUM_THREADS": "1",
    # ONNX Runtime
    "ORT_DISABLE_PARALLELISM": "1",
    "ORT_NUM_THREADS": "1",
    "ORT_EXECUTION_PROVIDER": "CPUExecutionProvider",
    # Dynamic thread scaling
    "MKL_DYNAMIC": "FALSE",
    "OMP_DYNAMIC": "FALSE",
    "OPENBLAS_DYNAMIC": "FALSE",
})

WORKER_MODULE = "memory_estimator.worker"


def build_worker_env(base: Optional[Mapping[str, str]] = None) -> dict[str, str]:
    """Return a new environment for a worker: base plus the pinned settings."""
    env = dict(os.environ if base is None else base)
    env.update(THREAD_PINNING_ENV)
    return env


def default_worker_command() -> list[str]:
    return [sys.executable, "-m", WORKER_MODULE]


def _as_text(stream) -> str:
    if stream is None:
        return ""
    if isinstance(stream, bytes):
        return stream.decode("utf-8", errors="replace")
    return stream


class SubprocessIsolation(IsolationBackend):
    """Runs each job in a child Python process. Determinism, not a security sandbox."""

    def __init__(
        self,
        scratch_dir,
        worker_command: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
        base_env: Optional[Mapping[str, str]] = None,
        cwd=None,
        emitter: Optional[EventEmitter] = None,
    ):
        self.scratch_dir = Path(scratch_dir)
        self.worker_command = list(worker_command or default_worker_command())
        self.timeout = timeout
        self.env = build_worker_env(base_env)
        self.cwd = cwd
        self.emitter = emitter

    def run(self, descriptor: TaskDescriptor) -> WorkerResult:
        task_id = descriptor.task_id
        task_file = write_descriptor(descriptor, scratch_path_for(task_id, self.scratch_dir))
        start = time.perf_counter()

        try:
            if self.emitter:
                self.emitter.complete(
                    EventType.WORKER_SPAWNED, "isolation",
                    f"Parent pid {os.getpid()}: spawning worker for task {task_id}",
                    task_id=task_id,
                    data={"task_file": str(task_file)},
                )
            proc = subprocess.run(
                [*self.worker_command, str(task_file)],
                capture_output=True,
                text=True,
                env=self.env,
                timeout=self.timeout,
                cwd=self.cwd,
            )
            elapsed_ms = (time.perf_counter() - start) * 1000
            result = WorkerResult(
                success=(proc.returncode == 0),
                stdout=proc.stdout,
                stderr=proc.stderr,
                exit_code=proc.returncode,
                error=proc.stderr if proc.returncode != 0 else None,
                execution_time_ms=elapsed_ms,
            )
        except subprocess.TimeoutExpired as e:
            result = WorkerResult(
                success=False,
                stdout=_as_text(e.stdout),
                stderr=_as_text(e.stderr),
                error=f"Worker timed out after {self.timeout}s",
                timed_out=True,
                execution_time_ms=(time.perf_counter() - start) * 1000,
            )
        except OSError as e:
            result = WorkerResult(
                success=False,
                stdout="",
                stderr=str(e),
                error=f"Failed to spawn worker: {e}",
            )
        finally:
            try:
                os.unlink(task_file)
            except OSError:
                pass

        if self.emitter:
            if result.success:
                self.emitter.complete(
                    EventType.WORKER_EXITED, "isolation",
                    f"Worker for task {task_id} exited cleanly",
                    task_id=task_id,
                    data={"exit_code": result.exit_code,
                          "execution_time_ms": result.execution_time_ms},
                )
            else:
                self.emitter.error(
                    "isolation",
                    f"Worker for task {task_id} failed: {result.error}",
                    task_id=task_id,
                    data={"exit_code": result.exit_code, "timed_out": result.timed_out,
                          "stdout": result.stdout[-2000:]},
                )

        return result
