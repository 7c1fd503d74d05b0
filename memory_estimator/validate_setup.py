#!/usr/bin/env python3
"""
Validate Setup — Pre-flight checks for the memory estimator.

Run this before starting the server to catch configuration issues early:
    python -m memory_estimator.validate_setup

Checks:
  1. All module imports resolve
  2. Configuration loads from MEMEST_* variables
  3. Required packages installed (fastapi, uvicorn, pydantic, wasmtime)
  4. Disassembler on PATH (wasm-tools or wasm2wat)
  5. Memory source (statm / ps / placeholder)
  6. Static estimate of a tiny in-memory module
  7. EventEmitter works
  8. Scratch directory is writable, worker env is pinned
"""

import importlib
import os
import shutil
import sys
import tempfile

# ─────────────────────────────────────────────
# Test harness
# ─────────────────────────────────────────────

_pass_count = 0
_fail_count = 0
_warnings = []


def check(name: str, condition: bool, detail: str = ""):
    global _pass_count, _fail_count
    if condition:
        _pass_count += 1
        print(f"  [PASS] {name}")
    else:
        _fail_count += 1
        msg = f"  [FAIL] {name}"
        if detail:
            msg += f" -- {detail}"
        print(msg)


def warn(name: str, detail: str):
    _warnings.append((name, detail))
    print(f"  [WARN] {name} -- {detail}")


# ─────────────────────────────────────────────
# 1. Module imports
# ─────────────────────────────────────────────

print("\n=== 1. Module Imports ===")

REQUIRED_MODULES = [
    "memory_estimator.models",
    "memory_estimator.models.types",
    "memory_estimator.models.events",
    "memory_estimator.config",
    "memory_estimator.core",
    "memory_estimator.core.binary_size",
    "memory_estimator.core.feature_extractor",
    "memory_estimator.core.wasm_reader",
    "memory_estimator.core.classifier",
    "memory_estimator.core.estimator",
    "memory_estimator.core.descriptor",
    "memory_estimator.core.isolation",
    "memory_estimator.core.monitor",
    "memory_estimator.core.reconciliation",
    "memory_estimator.core.dispatcher",
    "memory_estimator.integrations",
    "memory_estimator.integrations.wasm_engine",
    "memory_estimator.worker",
    "memory_estimator.server",
]

for mod in REQUIRED_MODULES:
    try:
        importlib.import_module(mod)
        check(f"import {mod}", True)
    except Exception as e:
        check(f"import {mod}", False, str(e))


# ─────────────────────────────────────────────
# 2. Configuration
# ─────────────────────────────────────────────

print("\n=== 2. Configuration ===")

settings = None
try:
    from memory_estimator.config import Settings
    settings = Settings.from_env()
    check("Settings.from_env()", True)
    if settings.modules_dir.is_dir():
        check("Modules directory exists", True)
    else:
        warn("Modules directory", f"{settings.modules_dir} not found -- jobs will fail")
    if not settings.models_dir.is_dir():
        warn("Models directory", f"{settings.models_dir} not found -- model mounts unavailable")
except Exception as e:
    check("Settings.from_env()", False, str(e))


# ─────────────────────────────────────────────
# 3. Required packages
# ─────────────────────────────────────────────

print("\n=== 3. Required Packages ===")

REQUIRED_PACKAGES = {
    "fastapi": "fastapi",
    "uvicorn": "uvicorn",
    "pydantic": "pydantic",
    "wasmtime": "wasmtime",
}

for display, pkg in REQUIRED_PACKAGES.items():
    try:
        importlib.import_module(pkg)
        check(f"Package: {display}", True)
    except ImportError:
        check(f"Package: {display}", False, f"pip install {pkg}")


# ─────────────────────────────────────────────
# 4. Disassembler
# ─────────────────────────────────────────────

print("\n=== 4. Disassembler ===")

try:
    from memory_estimator.integrations.wasm_engine import DISASSEMBLERS
    found = [tool for tool, _ in DISASSEMBLERS if shutil.which(tool)]
    if found:
        check(f"Disassembler: {found[0]}", True)
    else:
        warn("Disassembler", "neither wasm-tools nor wasm2wat on PATH -- "
                             "only the structured module walk is available")
except Exception as e:
    check("Disassembler lookup", False, str(e))


# ─────────────────────────────────────────────
# 5. Memory source
# ─────────────────────────────────────────────

print("\n=== 5. Memory Source ===")

try:
    from memory_estimator.core.monitor import get_current_memory_usage, memory_source
    source = memory_source()
    check("get_current_memory_usage() > 0", get_current_memory_usage() > 0)
    if source == "fallback":
        warn("Memory source", "no statm or ps -- measurements will be a 50 MB placeholder")
    else:
        check(f"Memory source: {source}", True)
except Exception as e:
    check("Memory monitor", False, str(e))


# ─────────────────────────────────────────────
# 6. Static estimate
# ─────────────────────────────────────────────

print("\n=== 6. Static Estimate ===")

try:
    from memory_estimator.core.estimator import build_memory_estimate
    from memory_estimator.models.types import WorkloadClass

    # (module (memory 1)): magic, version, memory section with one min-only limit
    tiny_module = b"\x00asm\x01\x00\x00\x00" + b"\x05\x03\x01\x00\x01"
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "tiny.wasm")
        with open(path, "wb") as f:
            f.write(tiny_module)
        analysis = build_memory_estimate(path)

    check("Module walk: 1 page", analysis.features.linear_memory_pages == 1)
    check("Classified as simple", analysis.workload == WorkloadClass.SIMPLE_COMPUTATION)
    check("peak > minimum", analysis.estimate.peak_bytes > analysis.estimate.minimum_bytes)
except Exception as e:
    check("Static estimate", False, str(e))


# ─────────────────────────────────────────────
# 7. EventEmitter
# ─────────────────────────────────────────────

print("\n=== 7. EventEmitter ===")

try:
    from memory_estimator.models.events import EventEmitter, EventType

    emitter = EventEmitter()
    received = []
    emitter.on_event(lambda e: received.append(e))

    emitter.log("test", "hello", task_id=1)
    check("EventEmitter.log()", len(received) == 1)

    emitter.complete(EventType.RECONCILED, "dispatcher", "reconcile test",
                     data={"fallback_used": False})
    check("EventEmitter RECONCILED", len(received) == 2)

    line = received[0].to_json()
    check("JobEvent.to_json()", line.startswith("{") and "\n" not in line)

except Exception as e:
    check("EventEmitter", False, str(e))


# ─────────────────────────────────────────────
# 8. Scratch directory
# ─────────────────────────────────────────────

print("\n=== 8. Scratch Directory / Worker Env ===")

if settings is not None:
    scratch = settings.scratch_dir
    check("Scratch directory writable", os.access(scratch, os.W_OK), str(scratch))

try:
    from memory_estimator.core.isolation import build_worker_env
    before = os.environ.get("OMP_NUM_THREADS")
    env = build_worker_env()
    check("Worker env pins OMP_NUM_THREADS", env.get("OMP_NUM_THREADS") == "1")
    check("Parent environment untouched", os.environ.get("OMP_NUM_THREADS") == before)
except Exception as e:
    check("Worker environment", False, str(e))


# ─────────────────────────────────────────────
# Summary
# ─────────────────────────────────────────────

print(f"\n{'='*50}")
print(f"  PASS: {_pass_count}  |  FAIL: {_fail_count}  |  WARN: {len(_warnings)}")
print(f"{'='*50}")

if _fail_count > 0:
    print("\nFailed checks must be fixed before starting the server.")
    sys.exit(1)
elif _warnings:
    print("\nWarnings are non-blocking but may cause runtime issues.")
    sys.exit(0)
else:
    print("\nAll checks passed. System ready.")
    sys.exit(0)
