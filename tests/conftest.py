"""Shared test fixtures for ollama-export."""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path

import pytest
import structlog

from ollama_export.core import ModelExporter
from ollama_export.models import ExportConfig

MODEL_MEDIA_TYPE = "application/vnd.ollama.image.model"
PARAMS_MEDIA_TYPE = "application/vnd.ollama.image.params"
TEMPLATE_MEDIA_TYPE = "application/vnd.ollama.image.template"
SYSTEM_MEDIA_TYPE = "application/vnd.ollama.image.system"

WEIGHTS = b"GGUF\x00\x01\x02\x03" * 128


class FakeCache:
    """Builds an on-disk model cache laid out like ``~/.ollama/models``."""

    def __init__(self, root: Path) -> None:
        self.root = root
        (root / "blobs").mkdir(parents=True)
        (root / "manifests").mkdir(parents=True)

    def add_blob(self, data: bytes) -> str:
        digest = f"sha256:{hashlib.sha256(data).hexdigest()}"
        (self.root / "blobs" / digest.replace(":", "-")).write_bytes(data)
        return digest

    def add_manifest(
        self,
        layers: list[tuple[str, bytes]],
        registry: str = "registry.ollama.ai",
        library: str = "library",
        model: str = "llama3",
        tag: str = "latest",
    ) -> Path:
        """Store one blob per (media type, data) pair and a manifest listing them."""
        descriptors = [
            {"mediaType": media_type, "digest": self.add_blob(data), "size": len(data)}
            for media_type, data in layers
        ]
        return self.write_manifest(
            {
                "schemaVersion": 2,
                "mediaType": "application/vnd.docker.distribution.manifest.v2+json",
                "config": {"mediaType": "application/vnd.docker.container.image.v1+json"},
                "layers": descriptors,
            },
            registry=registry,
            library=library,
            model=model,
            tag=tag,
        )

    def write_manifest(
        self,
        document: object,
        registry: str = "registry.ollama.ai",
        library: str = "library",
        model: str = "llama3",
        tag: str = "latest",
    ) -> Path:
        path = self.root / "manifests" / registry / library / model / tag
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(document), encoding="utf-8")
        return path


# ---------------------------------------------------------------------------
# Cache fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def cache(tmp_path: Path) -> FakeCache:
    return FakeCache(tmp_path / "models")


@pytest.fixture()
def full_model(cache: FakeCache) -> FakeCache:
    """A cached ``llama3:latest`` with weights, params, template and system layers."""
    cache.add_manifest(
        [
            (MODEL_MEDIA_TYPE, WEIGHTS),
            (PARAMS_MEDIA_TYPE, json.dumps({"stop": ["a", "b"], "temperature": 0.7}).encode()),
            (TEMPLATE_MEDIA_TYPE, b"hello"),
            (SYSTEM_MEDIA_TYPE, b'You are "helpful".\n'),
        ]
    )
    return cache


# ---------------------------------------------------------------------------
# Core objects
# ---------------------------------------------------------------------------


@pytest.fixture()
def config(cache: FakeCache) -> ExportConfig:
    return ExportConfig(models_root=cache.root)


@pytest.fixture()
def exporter(config: ExportConfig) -> ModelExporter:
    return ModelExporter(config)


@pytest.fixture()
def out_dir(tmp_path: Path) -> Path:
    return tmp_path / "export"


@pytest.fixture(autouse=True)
def _reset_logging():
    """Drop handlers bound to CliRunner streams between tests."""
    yield
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()
    logging.getLogger().setLevel(logging.WARNING)
