"""Tests for ollama_export.models."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from ollama_export.errors import InvalidReferenceError
from ollama_export.models import (
    ExportConfig,
    Layer,
    Manifest,
    ModelReference,
    SupervisorConfig,
    default_models_root,
)


# ---------------------------------------------------------------------------
# ModelReference.parse
# ---------------------------------------------------------------------------


class TestModelReferenceParse:
    def test_single_segment_uses_defaults(self) -> None:
        ref = ModelReference.parse("llama3")
        assert ref.registry == "registry.ollama.ai"
        assert ref.library == "library"
        assert ref.model == "llama3"
        assert ref.tag == "latest"

    def test_two_segments_model_and_tag(self) -> None:
        ref = ModelReference.parse("llama3:8b")
        assert ref.model == "llama3"
        assert ref.tag == "8b"
        assert ref.library == "library"
        assert ref.registry == "registry.ollama.ai"

    def test_slash_and_colon_are_interchangeable(self) -> None:
        assert ModelReference.parse("llama3/8b") == ModelReference.parse("llama3:8b")

    def test_three_segments(self) -> None:
        ref = ModelReference.parse("someone/llama3:8b")
        assert ref.library == "someone"
        assert ref.model == "llama3"
        assert ref.tag == "8b"
        assert ref.registry == "registry.ollama.ai"

    def test_four_segments(self) -> None:
        ref = ModelReference.parse("example.com/team/llama3:8b")
        assert ref.manifest_parts == ("example.com", "team", "llama3", "8b")

    def test_empty_tag_falls_back_to_default(self) -> None:
        assert ModelReference.parse("llama3:").tag == "latest"

    def test_empty_library_falls_back_to_default(self) -> None:
        assert ModelReference.parse("/llama3:8b").library == "library"

    @pytest.mark.parametrize("name", ["", ":tag", "ns/:tag", "a/b/:c"])
    def test_empty_model_rejected(self, name: str) -> None:
        with pytest.raises(InvalidReferenceError):
            ModelReference.parse(name)

    def test_too_many_segments_rejected(self) -> None:
        with pytest.raises(InvalidReferenceError):
            ModelReference.parse("a/b/c/d:e")

    def test_display_name_and_source(self) -> None:
        ref = ModelReference.parse("team/llama3:8b")
        assert ref.display_name == "llama3:8b"
        assert ref.source == "registry.ollama.ai/team/llama3:8b"

    def test_reference_is_immutable(self) -> None:
        ref = ModelReference.parse("llama3")
        with pytest.raises(ValidationError):
            ref.tag = "other"  # type: ignore[misc]


# ---------------------------------------------------------------------------
# Layer / Manifest
# ---------------------------------------------------------------------------


class TestLayer:
    def test_blob_name_replaces_colon(self) -> None:
        layer = Layer(digest="sha256:abc", mediaType="application/vnd.ollama.image.model")
        assert layer.blob_name == "sha256-abc"

    def test_kind_is_last_media_type_segment(self) -> None:
        layer = Layer(digest="sha256:abc", media_type="application/vnd.ollama.image.params")
        assert layer.kind == "params"

    def test_kind_without_dot_is_whole_media_type(self) -> None:
        assert Layer(digest="d", mediaType="license").kind == "license"


class TestManifest:
    def test_unknown_fields_ignored(self) -> None:
        manifest = Manifest.model_validate(
            {
                "schemaVersion": 2,
                "config": {"digest": "sha256:c"},
                "layers": [{"digest": "sha256:a", "mediaType": "x.model", "size": 3}],
            }
        )
        assert len(manifest.layers) == 1
        assert manifest.layers[0].kind == "model"

    def test_layer_order_preserved(self) -> None:
        manifest = Manifest.model_validate(
            {
                "layers": [
                    {"digest": "sha256:2", "mediaType": "x.system"},
                    {"digest": "sha256:1", "mediaType": "x.model"},
                    {"digest": "sha256:2", "mediaType": "x.system"},
                ]
            }
        )
        assert [layer.digest for layer in manifest.layers] == ["sha256:2", "sha256:1", "sha256:2"]

    def test_missing_layers_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Manifest.model_validate({"schemaVersion": 2})

    def test_wrong_typed_layers_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Manifest.model_validate({"layers": "nope"})


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestConfig:
    def test_default_models_root_under_home(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        monkeypatch.delenv("OLLAMA_MODELS", raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))
        assert default_models_root() == tmp_path / ".ollama" / "models"

    def test_models_root_from_environment(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        monkeypatch.setenv("OLLAMA_MODELS", str(tmp_path / "cache"))
        assert ExportConfig().models_root == tmp_path / "cache"

    def test_derived_directories(self, tmp_path: Path) -> None:
        config = ExportConfig(models_root=tmp_path)
        assert config.manifests_dir == tmp_path / "manifests"
        assert config.blobs_dir == tmp_path / "blobs"
        assert config.verify_digests is False

    def test_supervisor_default_command(self) -> None:
        config = SupervisorConfig.default()
        assert Path(config.command[0]).name in ("ollama", "ollama.exe")
        assert config.command[1:] == ["serve"]
        assert config.env == {"OLLAMA_HOST": "127.0.0.1:11434"}
