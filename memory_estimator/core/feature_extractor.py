"""Static feature extraction from a module's text disassembly.

Scans WAT text for the declarations that drive memory use:
    (memory ...)                      first linear memory, initial pages
    (global $__stack_pointer ...)     initial stack pointer offset
    (table ... funcref)               every function-reference table
    (func / (data / (global lines     structural counts

A declaration that is absent leaves its field at zero. A declaration that is
present but carries a numeral that does not fit the field (non-ASCII digits,
overflow) raises ParseError and aborts the whole extraction.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Callable, Optional

from memory_estimator.core.errors import BinaryReadError, ParseError
from memory_estimator.models.types import StaticFeatureSet


# Optional "$name", "(;N;)" index comment, inline export and i64 index type
# may sit between the keyword and the first limit.
_DECL_PREFIX = r"(?:\s+\$\S+)?(?:\s+\(;\d+;\))?(?:\s+\(export\s+\"[^\"]*\"\))*(?:\s+i64)?"

MEMORY_RE = re.compile(r"\(memory" + _DECL_PREFIX + r"\s+(\d+)")
STACK_POINTER_RE = re.compile(r"stack_pointer.*?i32\.const\s+(\d+)")
FUNCREF_TABLE_RE = re.compile(
    r"\(table" + _DECL_PREFIX + r"\s+(\d+)(?:\s+\d+)?\s+funcref\)"
)

FUNC_PREFIX = "(func "
DATA_PREFIX = "(data "
GLOBAL_PREFIX = "(global "

U32_BITS = 32
U64_BITS = 64


def _parse_uint(numeral: str, bits: int, what: str) -> int:
    if not (numeral.isascii() and numeral.isdigit()):
        raise ParseError(f"Malformed {what}: {numeral!r}")
    value = int(numeral)
    if value >= 1 << bits:
        raise ParseError(f"{what} {numeral} does not fit in u{bits}")
    return value


def extract_features(disassembly: str) -> StaticFeatureSet:
    """Build a StaticFeatureSet from WAT text. Raises ParseError."""
    features = StaticFeatureSet()

    match = MEMORY_RE.search(disassembly)
    if match:
        features.linear_memory_pages = _parse_uint(match.group(1), U32_BITS, "memory pages")

    match = STACK_POINTER_RE.search(disassembly)
    if match:
        features.stack_pointer_offset_bytes = _parse_uint(
            match.group(1), U64_BITS, "stack pointer offset"
        )

    for match in FUNCREF_TABLE_RE.finditer(disassembly):
        features.function_table_sizes.append(
            _parse_uint(match.group(1), U32_BITS, "table size")
        )

    for line in disassembly.splitlines():
        stripped = line.strip()
        if stripped.startswith(FUNC_PREFIX):
            features.function_count += 1
        elif stripped.startswith(DATA_PREFIX):
            features.data_section_count += 1
        elif stripped.startswith(GLOBAL_PREFIX):
            features.global_count += 1

    return features


def read_disassembly(path) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise BinaryReadError(path, e) from e


def ensure_disassembly(
    module_path,
    disassembly_path,
    disassembler: Optional[Callable[[bytes], str]] = None,
) -> bool:
    """Write the WAT text for module_path unless a cached copy exists.

    Returns True when a new disassembly was written.
    """
    target = Path(disassembly_path)
    if target.exists():
        return False

    if disassembler is None:
        from memory_estimator.integrations.wasm_engine import disassemble
        disassembler = disassemble

    try:
        wasm_bytes = Path(module_path).read_bytes()
    except OSError as e:
        raise BinaryReadError(module_path, e) from e

    text = disassembler(wasm_bytes)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")
    return True
