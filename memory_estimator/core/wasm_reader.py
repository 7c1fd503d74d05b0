"""
Structured feature extraction from a core WebAssembly binary.

Walks the module's own sections instead of scanning printed text, so the
result does not depend on how a disassembler formats its output:

    import (2)    imported memories / tables / globals
    function (3)  defined function count
    table (4)     function-reference table sizes
    memory (5)    initial linear memory pages
    global (6)    defined globals and their initial values
    data (11)     data segment count
    custom "name" global names, used to find the stack pointer

Only the section layout and the small subset of constant expressions that
appear in global initializers are decoded. Everything else is skipped by
size.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional

from memory_estimator.core.errors import ParseError, UnsupportedBinaryError
from memory_estimator.models.types import StaticFeatureSet


WASM_MAGIC = b"\x00asm"
WASM_MODULE_VERSION = b"\x01\x00\x00\x00"


class SectionId(IntEnum):
    CUSTOM = 0
    TYPE = 1
    IMPORT = 2
    FUNCTION = 3
    TABLE = 4
    MEMORY = 5
    GLOBAL = 6
    EXPORT = 7
    START = 8
    ELEMENT = 9
    CODE = 10
    DATA = 11
    DATA_COUNT = 12
    TAG = 13


class ExternalKind(IntEnum):
    FUNC = 0
    TABLE = 1
    MEMORY = 2
    GLOBAL = 3
    TAG = 4


FUNCREF = 0x70
NAME_SUBSECTION_GLOBALS = 7

# Constant-expression opcodes that may appear in a global initializer.
OP_END = 0x0B
OP_GLOBAL_GET = 0x23
OP_I32_CONST = 0x41
OP_I64_CONST = 0x42
OP_F32_CONST = 0x43
OP_F64_CONST = 0x44
OP_REF_NULL = 0xD0
OP_REF_FUNC = 0xD2
# i32/i64 add, sub, mul from the extended-const proposal: no immediates.
NO_IMMEDIATE_OPS = {0x6A, 0x6B, 0x6C, 0x7C, 0x7D, 0x7E}

# Reference-type prefixes followed by a heap type (function-references).
REF_NULLABLE = 0x63
REF_NON_NULL = 0x64


@dataclass
class GlobalDecl:
    index: int
    imported: bool
    initial_i32: Optional[int] = None


@dataclass
class ModuleLayout:
    """Declarations collected from one module."""
    memory_pages: list[int] = field(default_factory=list)
    funcref_table_sizes: list[int] = field(default_factory=list)
    defined_function_count: int = 0
    globals: list[GlobalDecl] = field(default_factory=list)
    data_segment_count: int = 0
    global_names: dict[int, str] = field(default_factory=dict)


class _Cursor:
    """Little-endian/LEB128 reader over a bytes buffer."""

    def __init__(self, data: bytes, position: int = 0, end: Optional[int] = None):
        self.data = data
        self.position = position
        self.end = len(data) if end is None else end

    def at_end(self) -> bool:
        return self.position >= self.end

    def read_byte(self) -> int:
        if self.position >= self.end:
            raise ParseError(f"Unexpected end of module at offset {self.position}")
        value = self.data[self.position]
        self.position += 1
        return value

    def read_bytes(self, count: int) -> bytes:
        if self.position + count > self.end:
            raise ParseError(f"Unexpected end of module at offset {self.position}")
        value = self.data[self.position:self.position + count]
        self.position += count
        return value

    def read_u32(self) -> int:
        return self.read_leb128_unsigned(32)

    def peek_byte(self) -> int:
        if self.position >= self.end:
            raise ParseError(f"Unexpected end of module at offset {self.position}")
        return self.data[self.position]

    def _read_leb128(self, bits: int) -> tuple[int, int, int]:
        max_bytes = (bits + 6) // 7
        result = 0
        shift = 0
        for _ in range(max_bytes):
            byte = self.read_byte()
            result |= (byte & 0x7F) << shift
            shift += 7
            if (byte & 0x80) == 0:
                return result, shift, byte
        raise ParseError(f"LEB128 integer too long at offset {self.position}")

    def read_leb128_unsigned(self, bits: int = 64) -> int:
        result, _, _ = self._read_leb128(bits)
        if result >= 1 << bits:
            raise ParseError(f"LEB128 value {result} does not fit in u{bits}")
        return result

    def read_leb128_signed(self, bits: int = 64) -> int:
        result, shift, last = self._read_leb128(bits)
        if last & 0x40:
            result |= ~0 << shift
        return result

    def read_name(self) -> str:
        length = self.read_u32()
        return self.read_bytes(length).decode("utf-8", errors="replace")


def _check_header(data: bytes) -> None:
    if len(data) < 8 or data[:4] != WASM_MAGIC:
        raise UnsupportedBinaryError("Not a WebAssembly binary (bad magic)")
    if data[4:8] != WASM_MODULE_VERSION:
        # Components use the same magic with a different version/layer.
        raise UnsupportedBinaryError(
            f"Unsupported WebAssembly version/layer {data[4:8].hex()}; "
            "only core modules can be walked"
        )


def _read_limits(cursor: _Cursor) -> int:
    """Read a limits record and return its minimum."""
    flags = cursor.read_byte()
    is_64 = bool(flags & 0x04)
    minimum = cursor.read_leb128_unsigned(64 if is_64 else 32)
    if flags & 0x01:
        cursor.read_leb128_unsigned(64 if is_64 else 32)
    return minimum


def _read_value_type(cursor: _Cursor) -> int:
    value_type = cursor.read_byte()
    if value_type in (REF_NULLABLE, REF_NON_NULL):
        cursor.read_leb128_signed(33)
    return value_type


def _read_const_expr(cursor: _Cursor) -> Optional[int]:
    """Skip a constant expression; return its value if it is a bare i32.const."""
    i32_value = None
    instructions = 0
    while True:
        opcode = cursor.read_byte()
        if opcode == OP_END:
            break
        instructions += 1
        if opcode == OP_I32_CONST:
            i32_value = cursor.read_leb128_signed(32)
        elif opcode == OP_I64_CONST:
            cursor.read_leb128_signed(64)
        elif opcode == OP_F32_CONST:
            cursor.read_bytes(4)
        elif opcode == OP_F64_CONST:
            cursor.read_bytes(8)
        elif opcode in (OP_GLOBAL_GET, OP_REF_FUNC):
            cursor.read_u32()
        elif opcode == OP_REF_NULL:
            cursor.read_leb128_signed(33)
        elif opcode in NO_IMMEDIATE_OPS:
            pass
        else:
            raise UnsupportedBinaryError(
                f"Unsupported opcode 0x{opcode:02x} in constant expression "
                f"at offset {cursor.position - 1}"
            )
    return i32_value if instructions == 1 else None


def _read_imports(cursor: _Cursor, layout: ModuleLayout) -> None:
    for _ in range(cursor.read_u32()):
        cursor.read_name()
        cursor.read_name()
        kind = cursor.read_byte()
        if kind == ExternalKind.FUNC:
            cursor.read_u32()
        elif kind == ExternalKind.TABLE:
            ref_type = _read_value_type(cursor)
            size = _read_limits(cursor)
            if ref_type == FUNCREF:
                layout.funcref_table_sizes.append(size)
        elif kind == ExternalKind.MEMORY:
            layout.memory_pages.append(_read_limits(cursor))
        elif kind == ExternalKind.GLOBAL:
            _read_value_type(cursor)
            cursor.read_byte()
            layout.globals.append(GlobalDecl(index=len(layout.globals), imported=True))
        elif kind == ExternalKind.TAG:
            cursor.read_byte()
            cursor.read_u32()
        else:
            raise ParseError(f"Unknown import kind {kind}")


def _read_tables(cursor: _Cursor, layout: ModuleLayout) -> None:
    for _ in range(cursor.read_u32()):
        has_init = False
        if cursor.peek_byte() == 0x40:
            # Table with an explicit initializer expression.
            cursor.read_byte()
            cursor.read_byte()
            has_init = True
        ref_type = _read_value_type(cursor)
        size = _read_limits(cursor)
        if has_init:
            _read_const_expr(cursor)
        if ref_type == FUNCREF:
            layout.funcref_table_sizes.append(size)


def _read_globals(cursor: _Cursor, layout: ModuleLayout) -> None:
    for _ in range(cursor.read_u32()):
        _read_value_type(cursor)
        cursor.read_byte()
        value = _read_const_expr(cursor)
        layout.globals.append(
            GlobalDecl(index=len(layout.globals), imported=False, initial_i32=value)
        )


def _read_name_section(cursor: _Cursor, layout: ModuleLayout) -> None:
    while not cursor.at_end():
        subsection = cursor.read_byte()
        size = cursor.read_u32()
        end = cursor.position + size
        if subsection == NAME_SUBSECTION_GLOBALS:
            sub = _Cursor(cursor.data, cursor.position, end)
            for _ in range(sub.read_u32()):
                index = sub.read_u32()
                layout.global_names[index] = sub.read_name()
        cursor.position = end


def read_module_layout(data: bytes) -> ModuleLayout:
    """Collect declarations from a core module.

    Raises ParseError for malformed encodings and UnsupportedBinaryError for
    constructs the walk does not understand.
    """
    _check_header(data)
    layout = ModuleLayout()
    cursor = _Cursor(data, 8)

    while not cursor.at_end():
        section_id = cursor.read_byte()
        size = cursor.read_u32()
        start = cursor.position
        end = start + size
        if end > len(data):
            raise ParseError(f"Section {section_id} overruns the module")
        body = _Cursor(data, start, end)

        if section_id == SectionId.IMPORT:
            _read_imports(body, layout)
        elif section_id == SectionId.FUNCTION:
            layout.defined_function_count = body.read_u32()
        elif section_id == SectionId.TABLE:
            _read_tables(body, layout)
        elif section_id == SectionId.MEMORY:
            for _ in range(body.read_u32()):
                layout.memory_pages.append(_read_limits(body))
        elif section_id == SectionId.GLOBAL:
            _read_globals(body, layout)
        elif section_id == SectionId.DATA:
            layout.data_segment_count = body.read_u32()
        elif section_id == SectionId.CUSTOM:
            if body.read_name() == "name":
                _read_name_section(body, layout)

        cursor.position = end

    return layout


def _stack_pointer_offset(layout: ModuleLayout) -> int:
    for decl in layout.globals:
        name = layout.global_names.get(decl.index, "")
        if "stack_pointer" in name and decl.initial_i32 is not None:
            # i32 initializers are signed; the stack pointer is an address.
            return decl.initial_i32 & 0xFFFFFFFF
    return 0


def extract_features_from_module(data: bytes) -> StaticFeatureSet:
    """Build a StaticFeatureSet by walking the module's sections."""
    layout = read_module_layout(data)
    return StaticFeatureSet(
        linear_memory_pages=layout.memory_pages[0] if layout.memory_pages else 0,
        stack_pointer_offset_bytes=_stack_pointer_offset(layout),
        function_table_sizes=list(layout.funcref_table_sizes),
        function_count=layout.defined_function_count,
        data_section_count=layout.data_segment_count,
        global_count=sum(1 for g in layout.globals if not g.imported),
    )
