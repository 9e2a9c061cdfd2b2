"""Pydantic models for ollama-export."""

from __future__ import annotations

import enum
import os
import sys
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from .errors import InvalidReferenceError

__all__ = [
    "DEFAULT_REGISTRY",
    "DEFAULT_LIBRARY",
    "DEFAULT_TAG",
    "ModelReference",
    "Layer",
    "Manifest",
    "ExportConfig",
    "ExportResult",
    "SupervisorConfig",
    "SupervisorState",
    "default_models_root",
]

DEFAULT_REGISTRY = "registry.ollama.ai"
DEFAULT_LIBRARY = "library"
DEFAULT_TAG = "latest"

SERVE_ARG = "serve"
SERVE_HOST_ENV = {"OLLAMA_HOST": "127.0.0.1:11434"}


def default_models_root() -> Path:
    """Return ``$OLLAMA_MODELS`` or ``~/.ollama/models``."""
    env_dir = os.environ.get("OLLAMA_MODELS", "").strip()
    if env_dir:
        return Path(env_dir).expanduser()
    return Path.home() / ".ollama" / "models"


class ModelReference(BaseModel):
    """A fully resolved ``registry/library/model:tag`` reference."""

    model_config = ConfigDict(frozen=True)

    registry: str = DEFAULT_REGISTRY
    library: str = DEFAULT_LIBRARY
    model: str
    tag: str = DEFAULT_TAG

    @classmethod
    def parse(cls, name: str) -> ModelReference:
        """
        Resolve a raw name such as ``llama3``, ``llama3:8b`` or
        ``host/ns/llama3:8b``.

        Segments are right-aligned: the last is the tag (when there are at
        least two), the one before it the model, then library and registry.
        Empty or missing segments fall back to the defaults, except the
        model which is mandatory.
        """
        parts = name.replace(":", "/").split("/")
        if len(parts) > 4:
            raise InvalidReferenceError(
                f"invalid model reference {name!r}: too many segments"
            )

        registry = library = model = tag = ""
        if len(parts) == 4:
            registry, library, model, tag = parts
        elif len(parts) == 3:
            library, model, tag = parts
        elif len(parts) == 2:
            model, tag = parts
        else:
            model = parts[0]

        if not model:
            raise InvalidReferenceError(
                f"invalid model reference {name!r}: missing model name"
            )
        return cls(
            registry=registry or DEFAULT_REGISTRY,
            library=library or DEFAULT_LIBRARY,
            model=model,
            tag=tag or DEFAULT_TAG,
        )

    @property
    def display_name(self) -> str:
        return f"{self.model}:{self.tag}"

    @property
    def source(self) -> str:
        """Provenance string written to ``source.txt``."""
        return f"{self.registry}/{self.library}/{self.model}:{self.tag}"

    @property
    def manifest_parts(self) -> tuple[str, str, str, str]:
        return (self.registry, self.library, self.model, self.tag)


class Layer(BaseModel):
    """One manifest layer: a blob digest and the media type describing it."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    digest: str            # sha256:<hex>
    media_type: str = Field(alias="mediaType")

    @property
    def blob_name(self) -> str:
        """File name of the blob in the cache (``sha256-<hex>``)."""
        return self.digest.replace(":", "-")

    @property
    def kind(self) -> str:
        """Last dot-separated segment of the media type, e.g. ``model``."""
        return self.media_type.rsplit(".", 1)[-1]


class Manifest(BaseModel):
    """Decoded view of a cached model manifest; unknown keys are ignored."""

    model_config = ConfigDict(frozen=True)

    layers: list[Layer]


class ExportConfig(BaseModel):
    """Settings for a single export run."""

    models_root: Path = Field(default_factory=default_models_root)
    verify_digests: bool = False

    @property
    def manifests_dir(self) -> Path:
        return self.models_root / "manifests"

    @property
    def blobs_dir(self) -> Path:
        return self.models_root / "blobs"


class ExportResult(BaseModel):
    """Summary of a completed export."""

    reference: ModelReference
    output_dir: Path
    layer_count: int = 0
    weights_written: bool = False
    definition_lines: int = 0
    files: list[str] = Field(default_factory=list)


def _server_binary_name() -> str:
    return "ollama.exe" if sys.platform == "win32" else "ollama"


class SupervisorConfig(BaseModel):
    """Command line and environment overrides for the supervised server."""

    command: list[str]
    env: dict[str, str] = Field(default_factory=lambda: dict(SERVE_HOST_ENV))

    @classmethod
    def default(cls) -> SupervisorConfig:
        """
        Point at the ``ollama`` binary next to the running executable,
        started with ``serve`` and bound to the loopback address.
        """
        exe_dir = Path(sys.argv[0] or sys.executable).resolve().parent
        return cls(command=[str(exe_dir / _server_binary_name()), SERVE_ARG])


class SupervisorState(str, enum.Enum):
    """Lifecycle of a supervised server: idle, starting, running, then exited or terminated."""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"
    TERMINATING = "terminating"
    TERMINATED = "terminated"
