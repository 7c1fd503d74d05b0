"""Tests for integrations/wasm_engine.py against the real wasmtime runtime"""

import pytest
from wasmtime import wat2wasm

from memory_estimator.core.errors import DisassemblerUnavailableError, EngineError
from memory_estimator.integrations import wasm_engine
from memory_estimator.integrations.wasm_engine import WasmtimeEngine, disassemble

WASI_WAT = """
(module
  (import "wasi_snapshot_preview1" "fd_read"
    (func $fd_read (param i32 i32 i32 i32) (result i32)))
  (import "wasi_snapshot_preview1" "fd_write"
    (func $fd_write (param i32 i32 i32 i32) (result i32)))
  (import "wasi_snapshot_preview1" "fd_prestat_get"
    (func $fd_prestat_get (param i32 i32) (result i32)))
  (memory (export "memory") 1)
  (global (export "counter") i32 (i32.const 0))

  (func (export "answer") (result i32)
    (i32.const 42))

  ;; read stdin into 64.., write the same bytes to stdout, return the count
  (func (export "echo") (result i32)
    (i32.store (i32.const 0) (i32.const 64))
    (i32.store (i32.const 4) (i32.const 256))
    (drop (call $fd_read (i32.const 0) (i32.const 0) (i32.const 1) (i32.const 8)))
    (i32.store (i32.const 4) (i32.load (i32.const 8)))
    (drop (call $fd_write (i32.const 1) (i32.const 0) (i32.const 1) (i32.const 12)))
    (i32.load (i32.const 8)))

  ;; length of the first preopened directory's guest name, -1 without one
  (func (export "preopen_name_len") (result i32)
    (if (result i32) (call $fd_prestat_get (i32.const 3) (i32.const 16))
      (then (i32.const -1))
      (else (i32.load (i32.const 20)))))
)
"""


@pytest.fixture
def module_path(tmp_path):
    path = tmp_path / "wasi_job.wasm"
    path.write_bytes(bytes(wat2wasm(WASI_WAT)))
    return path


@pytest.fixture
def engine():
    return WasmtimeEngine()


class TestWasmtimeEngine:

    @pytest.mark.asyncio
    async def test_returns_values(self, engine, module_path):
        outputs = await engine.invoke(module_path, "answer", "")
        assert outputs == {"values": [42], "stdout": ""}

    @pytest.mark.asyncio
    async def test_payload_on_stdin_and_stdout_captured(self, engine, module_path):
        outputs = await engine.invoke(module_path, "echo", "hello")
        assert outputs["values"] == [5]
        assert outputs["stdout"] == "hello"

    @pytest.mark.asyncio
    async def test_model_folder_preopened_under_its_name(self, engine, module_path, tmp_path):
        mount = tmp_path / "mobilenet"
        mount.mkdir()
        (mount / "weights.bin").write_bytes(b"\x00" * 16)

        outputs = await engine.invoke(module_path, "preopen_name_len", "", mount)

        assert outputs["values"] == [len("mobilenet")]

    @pytest.mark.asyncio
    async def test_no_preopen_without_mount(self, engine, module_path):
        outputs = await engine.invoke(module_path, "preopen_name_len", "")
        assert outputs["values"] == [-1]

    @pytest.mark.asyncio
    async def test_missing_mount_folder(self, engine, module_path, tmp_path):
        with pytest.raises(EngineError, match="Model folder"):
            await engine.invoke(module_path, "answer", "", tmp_path / "absent")

    @pytest.mark.asyncio
    async def test_missing_export(self, engine, module_path):
        with pytest.raises(EngineError, match="not found"):
            await engine.invoke(module_path, "nope", "")

    @pytest.mark.asyncio
    async def test_export_that_is_not_a_function(self, engine, module_path):
        with pytest.raises(EngineError, match="not a function"):
            await engine.invoke(module_path, "counter", "")

    @pytest.mark.asyncio
    async def test_invalid_module(self, engine, tmp_path):
        path = tmp_path / "broken.wasm"
        path.write_bytes(b"\x00asm\x01\x00\x00\x00\xff")
        with pytest.raises(EngineError):
            await engine.invoke(path, "answer", "")


class TestDisassemble:

    def test_no_tool_on_path(self, monkeypatch):
        monkeypatch.setattr(wasm_engine.shutil, "which", lambda tool: None)
        with pytest.raises(DisassemblerUnavailableError):
            disassemble(b"\x00asm\x01\x00\x00\x00")

    def test_tool_failure_is_engine_error(self, monkeypatch, tmp_path):
        tool = tmp_path / "wasm-tools"
        tool.write_text("#!/bin/sh\necho 'bad module' >&2\nexit 3\n")
        tool.chmod(0o755)
        monkeypatch.setattr(wasm_engine.shutil, "which",
                            lambda name: str(tool) if name == "wasm-tools" else None)
        with pytest.raises(EngineError, match="bad module"):
            disassemble(b"\x00asm\x01\x00\x00\x00")

    def test_prints_tool_stdout(self, monkeypatch, tmp_path):
        tool = tmp_path / "wasm2wat"
        tool.write_text("#!/bin/sh\necho '(module)'\n")
        tool.chmod(0o755)
        monkeypatch.setattr(wasm_engine.shutil, "which",
                            lambda name: str(tool) if name == "wasm2wat" else None)
        assert disassemble(b"\x00asm\x01\x00\x00\x00").strip() == "(module)"
