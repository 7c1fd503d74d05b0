"""
Runtime configuration.

Every setting can be overridden with a MEMEST_* environment variable:
    MEMEST_MODULES_DIR      directory holding .wasm/.cwasm/.wat artifacts
    MEMEST_MODELS_DIR       read-only directory with per-job model folders
    MEMEST_SCRATCH_DIR      where task descriptors are handed to workers
    MEMEST_FEATURE_SOURCE   "module" (walk the binary) or "disassembly" (scan text)
    MEMEST_WORKER_TIMEOUT   seconds; unset means wait for the worker forever
    MEMEST_HOST / MEMEST_PORT   bind address of the HTTP server
"""

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


DEFAULT_MODULES_DIR = "wasm-modules"
DEFAULT_MODELS_DIR = "models"
DEFAULT_HOST = "::"
DEFAULT_PORT = 8082

FEATURE_SOURCES = ("module", "disassembly")


@dataclass(frozen=True)
class Settings:
    modules_dir: Path = Path(DEFAULT_MODULES_DIR)
    models_dir: Path = Path(DEFAULT_MODELS_DIR)
    scratch_dir: Path = Path(tempfile.gettempdir())
    feature_source: str = "module"
    worker_timeout: Optional[float] = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ

        feature_source = env.get("MEMEST_FEATURE_SOURCE", "module").lower()
        if feature_source not in FEATURE_SOURCES:
            raise ValueError(
                f"MEMEST_FEATURE_SOURCE must be one of {FEATURE_SOURCES}, "
                f"got {feature_source!r}"
            )

        timeout = env.get("MEMEST_WORKER_TIMEOUT", "").strip()

        return cls(
            modules_dir=Path(env.get("MEMEST_MODULES_DIR", DEFAULT_MODULES_DIR)),
            models_dir=Path(env.get("MEMEST_MODELS_DIR", DEFAULT_MODELS_DIR)),
            scratch_dir=Path(env.get("MEMEST_SCRATCH_DIR", tempfile.gettempdir())),
            feature_source=feature_source,
            worker_timeout=float(timeout) if timeout else None,
            host=env.get("MEMEST_HOST", DEFAULT_HOST),
            port=int(env.get("MEMEST_PORT", DEFAULT_PORT)),
        )

    def module_path(self, name: str) -> Path:
        return self.modules_dir / name

    def model_mount(self, folder_name: str) -> Optional[Path]:
        """Host directory to expose to the job, or None for no mount."""
        if not folder_name:
            return None
        return self.models_dir / folder_name

    def to_env(self) -> dict[str, str]:
        """MEMEST_* variables that make from_env() in a child rebuild these settings."""
        env = {
            "MEMEST_MODULES_DIR": str(self.modules_dir.resolve()),
            "MEMEST_MODELS_DIR": str(self.models_dir.resolve()),
            "MEMEST_SCRATCH_DIR": str(self.scratch_dir.resolve()),
            "MEMEST_FEATURE_SOURCE": self.feature_source,
            "MEMEST_HOST": self.host,
            "MEMEST_PORT": str(self.port),
        }
        if self.worker_timeout is not None:
            env["MEMEST_WORKER_TIMEOUT"] = str(self.worker_timeout)
        return env
