"""Shared fixtures: hand-assembled WebAssembly modules and WAT text."""

import pytest

from memory_estimator.config import Settings


def leb_u(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def leb_s(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if (value == 0 and not byte & 0x40) or (value == -1 and byte & 0x40):
            out.append(byte)
            return bytes(out)
        out.append(byte | 0x80)


def name(text: str) -> bytes:
    raw = text.encode("utf-8")
    return leb_u(len(raw)) + raw


def section(section_id: int, body: bytes) -> bytes:
    return bytes([section_id]) + leb_u(len(body)) + body


def vec(items) -> bytes:
    items = list(items)
    return leb_u(len(items)) + b"".join(items)


HEADER = b"\x00asm\x01\x00\x00\x00"


def build_module(
    memory_pages=None,
    memory_max=None,
    tables=(),
    functions=0,
    globals_=(),
    global_names=None,
    data_segments=0,
    imports=(),
) -> bytes:
    """Assemble a core module with only the sections the reader looks at.

    globals_ is a sequence of i32 initial values; global_names maps global
    index -> name (imported globals come first in the index space).
    """
    out = HEADER
    if imports:
        out += section(2, vec(imports))
    if functions:
        out += section(3, vec([b"\x00"] * functions))
    if tables:
        entries = [bytes([ref_type]) + b"\x00" + leb_u(size) for ref_type, size in tables]
        out += section(4, vec(entries))
    if memory_pages is not None:
        if memory_max is None:
            limits = b"\x00" + leb_u(memory_pages)
        else:
            limits = b"\x01" + leb_u(memory_pages) + leb_u(memory_max)
        out += section(5, vec([limits]))
    if globals_:
        entries = [b"\x7f\x01\x41" + leb_s(v) + b"\x0b" for v in globals_]
        out += section(6, vec(entries))
    if data_segments:
        segment = b"\x00\x41\x00\x0b" + vec([b"\x2a"])
        out += section(11, vec([segment] * data_segments))
    if global_names:
        names = vec(leb_u(i) + name(n) for i, n in sorted(global_names.items()))
        out += section(0, name("name") + bytes([7]) + leb_u(len(names)) + names)
    return out


SAMPLE_WAT = """\
(module
  (type (;0;) (func))
  (import "env" "log" (func $log (type 0)))
  (func $main (type 0)
    nop)
  (func $helper (type 0)
    nop)
  (table (;0;) 3 3 funcref)
  (memory (;0;) 17)
  (global $__stack_pointer (;0;) (mut i32) (i32.const 1048576))
  (global (;1;) i32 (i32.const 1048576))
  (export "memory" (memory 0))
  (data $.rodata (;0;) (i32.const 1048576) "hello")
)
"""


@pytest.fixture
def wasm_module():
    return build_module


@pytest.fixture
def settings(tmp_path):
    modules = tmp_path / "wasm-modules"
    models = tmp_path / "models"
    scratch = tmp_path / "scratch"
    for d in (modules, models, scratch):
        d.mkdir()
    return Settings(modules_dir=modules, models_dir=models, scratch_dir=scratch)


@pytest.fixture
def sample_wat():
    return SAMPLE_WAT
