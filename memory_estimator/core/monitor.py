"""Resident memory sampling around a single job invocation.

Memory is read at two points only: just before the job is awaited and just
after it returns. peak_bytes = max(initial, final) is therefore an endpoint
proxy; a spike that is freed before the job returns is not seen.

Measurement sources, in order:
  1. /proc/self/statm resident pages * page size   (Linux)
  2. `ps -o rss= -p <pid>` in KiB                   (macOS, BSDs)
  3. FALLBACK_MEMORY_BYTES                          (placeholder, NOT a measurement)
"""

from __future__ import annotations

import mmap
import os
import subprocess
import time
from typing import Any, Awaitable, Callable, Optional

from memory_estimator.models.types import MIB, MemorySample


STATM_PATH = "/proc/self/statm"
STATUS_PATH = "/proc/self/status"
PAGE_SIZE = mmap.PAGESIZE
FALLBACK_MEMORY_BYTES = 50 * MIB
PS_TIMEOUT_S = 5.0

STATUS_FIELDS = ("VmRSS:", "VmSize:", "VmPeak:")


def _rss_from_statm(path: str = STATM_PATH) -> Optional[int]:
    try:
        with open(path, "r") as f:
            fields = f.read().split()
    except OSError:
        return None
    if len(fields) < 2 or not fields[1].isdigit():
        return None
    return int(fields[1]) * PAGE_SIZE


def _rss_from_ps(pid: Optional[int] = None) -> Optional[int]:
    pid = os.getpid() if pid is None else pid
    try:
        proc = subprocess.run(
            ["ps", "-o", "rss=", "-p", str(pid)],
            capture_output=True,
            text=True,
            timeout=PS_TIMEOUT_S,
        )
    except (OSError, subprocess.SubprocessError):
        return None
    rss_kb = proc.stdout.strip()
    if proc.returncode != 0 or not rss_kb.isdigit():
        return None
    return int(rss_kb) * 1024


def get_current_memory_usage() -> int:
    """Resident set size of this process in bytes. Never raises."""
    for probe in (_rss_from_statm, _rss_from_ps):
        value = probe()
        if value is not None:
            return value
    return FALLBACK_MEMORY_BYTES


def memory_source() -> str:
    """Name of the first source that currently yields a value."""
    if _rss_from_statm() is not None:
        return "statm"
    if _rss_from_ps() is not None:
        return "ps"
    return "fallback"


def read_process_status(path: str = STATUS_PATH) -> dict[str, str]:
    """VmRSS / VmSize / VmPeak lines from /proc/self/status, if available."""
    try:
        with open(path, "r") as f:
            lines = f.read().splitlines()
    except OSError:
        return {}
    status = {}
    for line in lines:
        if line.startswith(STATUS_FIELDS):
            key, _, value = line.partition(":")
            status[key] = value.strip()
    return status


async def run_with_memory_monitoring(
    invoke: Callable[[], Awaitable[Any]],
    sampler: Callable[[], int] = get_current_memory_usage,
) -> tuple[Any, MemorySample]:
    """Await invoke() once, sampling resident memory before and after it.

    Exceptions from invoke() propagate; no sample is produced for a failed job.
    """
    initial = sampler()
    start = time.perf_counter()

    outputs = await invoke()

    final = sampler()
    elapsed_ms = int((time.perf_counter() - start) * 1000)
    sample = MemorySample(
        initial_bytes=initial,
        final_bytes=final,
        peak_bytes=max(initial, final),
        elapsed_ms=elapsed_ms,
    )
    return outputs, sample
