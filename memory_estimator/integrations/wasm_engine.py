"""
WebAssembly execution and disassembly — the external collaborators.

ExecutionEngine is the seam the worker calls through; WasmtimeEngine is the
implementation backed by the wasmtime package:
  - threads and multi-memory disabled in the engine config
  - WASI with the job payload on stdin and stdout captured to a file
  - the job's model folder preopened read-only for the guest

Only core modules are supported (.wasm, or .cwasm precompiled by the same
wasmtime version). The exported function is called without arguments; the
payload reaches it through stdin.

disassemble() shells out to `wasm-tools print` or wabt's `wasm2wat`,
whichever is installed first.
"""

from __future__ import annotations

import asyncio
import shutil
import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from wasmtime import Config, Engine, Func, Linker, Module, Store, Trap, WasiConfig, WasmtimeError

from memory_estimator.core.errors import DisassemblerUnavailableError, EngineError


DISASSEMBLERS = (
    ("wasm-tools", ["print"]),
    ("wasm2wat", []),
)
DISASSEMBLE_TIMEOUT_S = 120.0


class ExecutionEngine(ABC):
    """Runs one exported function of a compiled module."""

    @abstractmethod
    async def invoke(
        self,
        module_path: Path,
        function_name: str,
        payload: str,
        mount_dir: Optional[Path] = None,
    ) -> dict[str, Any]:
        """Call function_name and return {"values": [...], "stdout": "..."}.

        Raises EngineError when the module cannot be loaded or the call traps.
        """
        ...


def _to_json_value(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return repr(value)


class WasmtimeEngine(ExecutionEngine):

    def __init__(self):
        config = Config()
        config.wasm_threads = False
        config.wasm_multi_memory = False
        self.engine = Engine(config)

    async def invoke(self, module_path, function_name, payload, mount_dir=None):
        return await asyncio.to_thread(
            self._invoke_sync, Path(module_path), function_name, payload, mount_dir
        )

    def _load_module(self, module_path: Path) -> Module:
        if module_path.suffix == ".cwasm":
            return Module.deserialize_file(self.engine, str(module_path))
        return Module.from_file(self.engine, str(module_path))

    def _invoke_sync(self, module_path: Path, function_name: str, payload: str,
                     mount_dir: Optional[Path]) -> dict[str, Any]:
        if mount_dir is not None and not mount_dir.is_dir():
            raise EngineError(f"Model folder {mount_dir} not found")

        with tempfile.TemporaryDirectory(prefix="wasm_job_") as tmp:
            stdin_path = Path(tmp) / "stdin"
            stdout_path = Path(tmp) / "stdout"
            stdin_path.write_text(payload, encoding="utf-8")

            wasi = WasiConfig()
            wasi.stdin_file = str(stdin_path)
            wasi.stdout_file = str(stdout_path)
            wasi.inherit_stderr()
            if mount_dir is not None:
                wasi.preopen_dir(str(mount_dir), mount_dir.name, fs_mutable=False)

            store = Store(self.engine)
            store.set_wasi(wasi)
            linker = Linker(self.engine)
            linker.define_wasi()

            try:
                module = self._load_module(module_path)
                instance = linker.instantiate(store, module)
                exports = instance.exports(store)
                try:
                    func = exports[function_name]
                except (KeyError, IndexError):
                    raise EngineError(f"exported function `{function_name}` not found")
                if not isinstance(func, Func):
                    raise EngineError(f"export `{function_name}` is not a function")
                raw = func(store)
            except (WasmtimeError, Trap, TypeError, OSError) as e:
                raise EngineError(f"{module_path.name}: {e}") from e

            if raw is None:
                values = []
            elif isinstance(raw, (list, tuple)):
                values = [_to_json_value(v) for v in raw]
            else:
                values = [_to_json_value(raw)]

            stdout = stdout_path.read_text(encoding="utf-8", errors="replace") \
                if stdout_path.exists() else ""

        return {"values": values, "stdout": stdout}


def disassemble(wasm_bytes: bytes) -> str:
    """Print a binary module as WAT text with an installed CLI tool."""
    for tool, args in DISASSEMBLERS:
        exe = shutil.which(tool)
        if exe is None:
            continue
        with tempfile.NamedTemporaryFile(suffix=".wasm", delete=False) as f:
            f.write(wasm_bytes)
            tmp_path = f.name
        try:
            proc = subprocess.run(
                [exe, *args, tmp_path],
                capture_output=True,
                text=True,
                timeout=DISASSEMBLE_TIMEOUT_S,
            )
        finally:
            Path(tmp_path).unlink(missing_ok=True)
        if proc.returncode != 0:
            raise EngineError(f"{tool} failed: {proc.stderr.strip()}")
        return proc.stdout
    raise DisassemblerUnavailableError(
        "No disassembler found; install wasm-tools or wabt (wasm2wat)"
    )
