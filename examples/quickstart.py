"""
ollama-export quickstart — working demo of name resolution and export.

Run directly:

    python examples/quickstart.py

Builds a throwaway model cache in a temporary directory, so no local
Ollama installation is needed. Everything is cleaned up afterwards.
"""

from __future__ import annotations

import hashlib
import json
import pathlib
import tempfile


# ---------------------------------------------------------------------------
# Demo 1: Resolve model references
# ---------------------------------------------------------------------------

def demo_resolve_names() -> None:
    """Show how short names expand to registry/library/model:tag."""
    print("\n=== Demo 1: Resolve model references ===")

    from ollama_export.models import ModelReference

    for name in ("llama3", "llama3:8b", "someone/coder:7b", "example.com/team/mistral:v2"):
        ref = ModelReference.parse(name)
        print(f"  {name:<30} -> {ref.source}")


# ---------------------------------------------------------------------------
# Demo 2: Build a fake cache
# ---------------------------------------------------------------------------

def _add_blob(blobs: pathlib.Path, data: bytes) -> str:
    digest = f"sha256:{hashlib.sha256(data).hexdigest()}"
    (blobs / digest.replace(":", "-")).write_bytes(data)
    return digest


def demo_build_cache(root: pathlib.Path) -> pathlib.Path:
    """Lay out manifests/ and blobs/ the way Ollama stores a pulled model."""
    print("\n=== Demo 2: Build a model cache ===")

    blobs = root / "blobs"
    blobs.mkdir(parents=True)

    layers = [
        ("application/vnd.ollama.image.model", b"GGUF" + b"\x00" * 2048),
        ("application/vnd.ollama.image.template", b"{{ .System }}\n{{ .Prompt }}"),
        ("application/vnd.ollama.image.params", json.dumps(
            {"stop": ["<|start_header_id|>", "<|eot_id|>"], "temperature": 0.7}
        ).encode()),
        ("application/vnd.ollama.image.system", b"You are a concise assistant."),
    ]
    manifest = {
        "schemaVersion": 2,
        "layers": [
            {"mediaType": media_type, "digest": _add_blob(blobs, data), "size": len(data)}
            for media_type, data in layers
        ],
    }
    manifest_path = root / "manifests" / "registry.ollama.ai" / "library" / "tiny" / "latest"
    manifest_path.parent.mkdir(parents=True)
    manifest_path.write_text(json.dumps(manifest, indent=2), encoding="utf-8")

    print(f"  Manifest : {manifest_path.relative_to(root)}")
    print(f"  Blobs    : {len(list(blobs.iterdir()))}")
    return root


# ---------------------------------------------------------------------------
# Demo 3: Export
# ---------------------------------------------------------------------------

def demo_export(models_root: pathlib.Path, output_dir: pathlib.Path) -> None:
    """Export tiny:latest and print the generated Modelfile."""
    print("\n=== Demo 3: Export ===")

    from ollama_export.core import ModelExporter
    from ollama_export.models import ExportConfig

    exporter = ModelExporter(ExportConfig(models_root=models_root, verify_digests=True))
    result = exporter.export("tiny", output_dir)

    print(f"  Exported {result.reference.display_name} to {result.output_dir}")
    print(f"  Files : {result.files}")
    print(f"  model.bin size : {(output_dir / 'model.bin').stat().st_size:,} bytes")
    print("\n  Modelfile:")
    for line in (output_dir / "Modelfile").read_text(encoding="utf-8").splitlines():
        print(f"    {line}")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> None:
    print("ollama-export quickstart demo")
    print("=" * 40)

    demo_resolve_names()

    with tempfile.TemporaryDirectory() as tmp:
        tmp_path = pathlib.Path(tmp)
        models_root = demo_build_cache(tmp_path / "models")
        demo_export(models_root, tmp_path / "export")

    print("\n" + "=" * 40)
    print("All demos completed successfully.")


if __name__ == "__main__":
    main()
