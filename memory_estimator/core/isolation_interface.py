"""
Abstract Isolation Interface — The contract for job execution backends.

This defines the ONLY interface through which the rest of the system runs a
submitted job. A backend receives one TaskDescriptor and must run it in a
brand-new process so that numeric backends start with the pinned threading
configuration.

Integration contract:
  - descriptor in → WorkerResult out
  - exactly one job per process
  - scratch descriptor removed whether the worker succeeds or fails
  - worker failures are reported in the result, never raised
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from memory_estimator.models.types import TaskDescriptor


@dataclass
class WorkerResult:
    """The ONLY return type from any isolation backend. This is the contract."""
    success: bool
    stdout: str
    stderr: str
    exit_code: Optional[int] = None
    error: Optional[str] = None
    timed_out: bool = False
    execution_time_ms: Optional[float] = None


class IsolationBackend(ABC):
    """Abstract interface for per-job process isolation."""

    @abstractmethod
    def run(self, descriptor: TaskDescriptor) -> WorkerResult:
        """Run one job in a fresh worker process and block until it exits.

        Args:
            descriptor: the job to run; its task_id names the scratch file

        Returns:
            WorkerResult with the raw exit status and captured streams.
            No retry is attempted on failure.
        """
        ...
