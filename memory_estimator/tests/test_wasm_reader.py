"""Tests for core/wasm_reader.py (structured walk of binary modules)"""

import pytest

from memory_estimator.core.errors import ParseError, UnsupportedBinaryError
from memory_estimator.core.wasm_reader import extract_features_from_module, read_module_layout

HEADER = b"\x00asm\x01\x00\x00\x00"
IMPORTED_GLOBAL = b"\x03env\x01g\x03\x7f\x00"
IMPORTED_MEMORY = b"\x03env\x06memory\x02\x00\x05"
IMPORTED_TABLE = b"\x03env\x05table\x01\x70\x00\x04"


class TestFeatures:

    def test_empty_module(self):
        f = extract_features_from_module(HEADER)
        assert f.linear_memory_pages == 0
        assert f.function_table_sizes == []
        assert f.function_count == 0

    def test_memory_initial_pages(self, wasm_module):
        f = extract_features_from_module(wasm_module(memory_pages=17, memory_max=256))
        assert f.linear_memory_pages == 17
        assert f.linear_memory_bytes == 1_114_112

    def test_multibyte_leb_pages(self, wasm_module):
        f = extract_features_from_module(wasm_module(memory_pages=300))
        assert f.linear_memory_pages == 300

    def test_counts(self, wasm_module):
        data = wasm_module(functions=250, data_segments=3, globals_=[1, 2])
        f = extract_features_from_module(data)
        assert f.function_count == 250
        assert f.data_section_count == 3
        assert f.global_count == 2

    def test_only_funcref_tables(self, wasm_module):
        data = wasm_module(tables=[(0x70, 3), (0x6F, 8), (0x70, 1)])
        f = extract_features_from_module(data)
        assert f.function_table_sizes == [3, 1]
        assert f.total_function_references == 4

    def test_named_stack_pointer(self, wasm_module):
        data = wasm_module(globals_=[1_048_576], global_names={0: "__stack_pointer"})
        f = extract_features_from_module(data)
        assert f.stack_pointer_offset_bytes == 1_048_576

    def test_negative_initializer_read_as_address(self, wasm_module):
        data = wasm_module(globals_=[-16], global_names={0: "__stack_pointer"})
        f = extract_features_from_module(data)
        assert f.stack_pointer_offset_bytes == 0xFFFFFFF0

    def test_unnamed_globals_give_no_stack_pointer(self, wasm_module):
        f = extract_features_from_module(wasm_module(globals_=[65536]))
        assert f.stack_pointer_offset_bytes == 0

    def test_imported_globals_shift_index_space(self, wasm_module):
        data = wasm_module(
            imports=[IMPORTED_GLOBAL],
            globals_=[65536],
            global_names={1: "__stack_pointer"},
        )
        f = extract_features_from_module(data)
        assert f.stack_pointer_offset_bytes == 65536
        assert f.global_count == 1

    def test_imported_memory_and_table(self, wasm_module):
        data = wasm_module(imports=[IMPORTED_MEMORY, IMPORTED_TABLE])
        f = extract_features_from_module(data)
        assert f.linear_memory_pages == 5
        assert f.function_table_sizes == [4]


class TestRejects:

    def test_component_is_unsupported(self):
        with pytest.raises(UnsupportedBinaryError):
            read_module_layout(b"\x00asm\x0d\x00\x01\x00")

    def test_precompiled_artifact_is_unsupported(self):
        with pytest.raises(UnsupportedBinaryError):
            read_module_layout(b"\x7fELF\x02\x01\x01\x00" + b"\x00" * 32)

    def test_section_overrun(self):
        with pytest.raises(ParseError):
            read_module_layout(HEADER + b"\x05\x0a\x01\x00")

    def test_overlong_leb128(self):
        body = b"\x01\x00\x80\x80\x80\x80\x80\x00"
        with pytest.raises(ParseError):
            read_module_layout(HEADER + b"\x05" + bytes([len(body)]) + body)

    def test_u32_overflow(self):
        body = b"\x01\x00\x80\x80\x80\x80\x10"
        with pytest.raises(ParseError):
            read_module_layout(HEADER + b"\x05" + bytes([len(body)]) + body)

    def test_unknown_const_opcode_is_unsupported(self):
        # global i32 initialised by a 0xFB-prefixed (GC) instruction
        body = b"\x01\x7f\x00\xfb\x00\x0b"
        with pytest.raises(UnsupportedBinaryError):
            read_module_layout(HEADER + b"\x06" + bytes([len(body)]) + body)
