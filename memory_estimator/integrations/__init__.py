# Module: integrations
# Depends on: core/errors (external tools — wasmtime, wasm-tools / wabt)
#
# External collaborators: the WebAssembly execution engine and the disassembler.

from memory_estimator.integrations.wasm_engine import (
    ExecutionEngine,
    WasmtimeEngine,
    disassemble,
)
