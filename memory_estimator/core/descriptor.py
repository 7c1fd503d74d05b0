"""Task descriptor handoff: the file a dispatcher writes and a worker reads.

The worker only ever receives the *path* of this file on its command line,
never the payload itself.
"""

from __future__ import annotations

import base64
import binascii
import gzip
import json
import zlib
from dataclasses import asdict, fields
from pathlib import Path

from memory_estimator.core.errors import DescriptorError, ScratchCollisionError
from memory_estimator.models.types import TaskDescriptor


SCRATCH_PREFIX = "wasm_task_"
_FIELDS = {f.name for f in fields(TaskDescriptor)}
_NAME_FIELDS = ("binary_name", "compiled_module_file", "disassembly_file", "model_folder_name")


def check_plain_name(name, field: str, allow_empty: bool = False) -> None:
    """Reject anything but a single file or folder name (no separators, no ..)."""
    if not isinstance(name, str):
        raise DescriptorError(f"{field} must be a string, got {type(name).__name__}")
    if not name:
        if allow_empty:
            return
        raise DescriptorError(f"{field} must not be empty")
    if name in (".", "..") or "/" in name or "\\" in name or "\0" in name:
        raise DescriptorError(f"{field} must be a plain name, got {name!r}")


def validate_descriptor(descriptor: TaskDescriptor) -> TaskDescriptor:
    """Check every name that is later joined onto a host directory."""
    for field in _NAME_FIELDS:
        check_plain_name(getattr(descriptor, field), field,
                         allow_empty=(field == "model_folder_name"))
    return descriptor


def scratch_path_for(task_id: int, scratch_dir) -> Path:
    """Deterministic per-task path; distinct task ids never share a file."""
    return Path(scratch_dir) / f"{SCRATCH_PREFIX}{task_id}.json"


def descriptor_to_dict(descriptor: TaskDescriptor) -> dict:
    return asdict(descriptor)


def descriptor_from_dict(data: dict) -> TaskDescriptor:
    if not isinstance(data, dict):
        raise DescriptorError(f"Task descriptor must be an object, got {type(data).__name__}")
    missing = {"task_id", "binary_name", "function_name"} - data.keys()
    if missing:
        raise DescriptorError(f"Task descriptor missing fields: {sorted(missing)}")
    unknown = data.keys() - _FIELDS
    if unknown:
        raise DescriptorError(f"Task descriptor has unknown fields: {sorted(unknown)}")
    task_id = data["task_id"]
    if isinstance(task_id, bool) or not isinstance(task_id, int) or task_id < 0:
        raise DescriptorError(f"task_id must be an unsigned integer, got {task_id!r}")
    for field in _NAME_FIELDS:
        if field in data:
            check_plain_name(data[field], field, allow_empty=True)
    return validate_descriptor(TaskDescriptor(**data))


def write_descriptor(descriptor: TaskDescriptor, path) -> Path:
    """Write the descriptor as JSON. Refuses to overwrite an existing file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(path, "x", encoding="utf-8") as f:
            json.dump(descriptor_to_dict(descriptor), f)
    except FileExistsError as e:
        raise ScratchCollisionError(
            f"Task {descriptor.task_id} already has a scratch descriptor at {path}"
        ) from e
    return path


def read_descriptor(path) -> TaskDescriptor:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise DescriptorError(f"Cannot read task descriptor {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise DescriptorError(f"Task descriptor {path} is not valid JSON: {e}") from e
    return descriptor_from_dict(data)


# ─────────────────────────────────────────────
# Payload encoding (gzip + standard base64)
# ─────────────────────────────────────────────

def encode_payload(text: str) -> str:
    return base64.b64encode(gzip.compress(text.encode("utf-8"))).decode("ascii")


def decode_payload(descriptor: TaskDescriptor) -> str:
    """Return the plain payload, decompressing it if flagged."""
    if not descriptor.payload_compressed:
        return descriptor.payload
    try:
        raw = base64.b64decode(descriptor.payload, validate=True)
        return gzip.decompress(raw).decode("utf-8")
    except (binascii.Error, OSError, EOFError, zlib.error, UnicodeDecodeError) as e:
        raise DescriptorError(f"Cannot decode compressed payload: {e}") from e
