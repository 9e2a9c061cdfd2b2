"""Core logic for ollama-export."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from .errors import (
    BlobNotFoundError,
    BlobReadError,
    DigestMismatchError,
    DirectoryCreateError,
    FileWriteError,
    LayerParseError,
    ManifestNotFoundError,
    ManifestParseError,
    TargetExistsError,
)
from .models import ExportConfig, ExportResult, Layer, Manifest, ModelReference

__all__ = [
    "ExportTarget",
    "ModelExporter",
    "locate_manifest",
    "read_manifest",
    "render_parameter",
    "escape_text",
]

logger = structlog.get_logger(__name__)

_SOURCE_FILENAME = "source.txt"
_WEIGHTS_FILENAME = "model.bin"
_DEFINITION_FILENAME = "Modelfile"


def _sha256_bytes(data: bytes) -> str:
    """Return 'sha256:<hex>' digest for *data*."""
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def locate_manifest(reference: ModelReference, config: ExportConfig) -> Path:
    """Return the manifest path for *reference*, which must be a regular file."""
    path = config.manifests_dir.joinpath(*reference.manifest_parts)
    if not path.is_file():
        raise ManifestNotFoundError(
            f"manifest not found for {reference.source}: {path}"
        )
    return path


def read_manifest(path: Path) -> Manifest:
    """Read and decode the manifest at *path*."""
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise ManifestParseError(f"failed to read manifest {path}: {exc}") from exc
    try:
        return Manifest.model_validate_json(raw)
    except ValidationError as exc:
        raise ManifestParseError(
            f"failed to decode manifest {path}: {exc}"
        ) from exc


def render_parameter(value: Any) -> str:
    """Render one parameter list element the way it appears in a Modelfile."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "<nil>"
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if isinstance(value, int):
        return str(value)
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def escape_text(text: str) -> str:
    """
    Escape *text* as the body of a double-quoted string literal.

    Backslashes, double quotes and control characters are escaped;
    printable characters, including non-ASCII ones, are kept as they are.
    """
    return json.dumps(text, ensure_ascii=False)[1:-1]


class ExportTarget:
    """
    The output directory of one export.

    Layout::

        source.txt   # registry/library/model:tag
        model.bin    # raw weights, only when a model layer exists
        Modelfile    # FROM / PARAMETER / <TYPE> lines in layer order
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    @property
    def definition_path(self) -> Path:
        return self.path / _DEFINITION_FILENAME

    @property
    def weights_path(self) -> Path:
        return self.path / _WEIGHTS_FILENAME

    @property
    def source_path(self) -> Path:
        return self.path / _SOURCE_FILENAME

    def create(self) -> None:
        """Create the directory; it must not exist beforehand."""
        if self.path.exists() or self.path.is_symlink():
            raise TargetExistsError(f"target already exists: {self.path}")
        try:
            self.path.mkdir(parents=True)
        except OSError as exc:
            raise DirectoryCreateError(
                f"failed to make directory {self.path}: {exc}"
            ) from exc

    def write_provenance(self, source: str) -> None:
        self._write(self.source_path, source.encode("utf-8"))

    def write_weights(self, data: bytes) -> None:
        self._write(self.weights_path, data)

    def append_line(self, text: str) -> None:
        """Append *text* verbatim to the definition file, creating it if absent."""
        try:
            with open(self.definition_path, "a", encoding="utf-8", newline="") as fh:
                fh.write(text)
        except OSError as exc:
            raise FileWriteError(
                f"failed to append file {self.definition_path}: {exc}"
            ) from exc

    def _write(self, path: Path, data: bytes) -> None:
        try:
            path.write_bytes(data)
        except OSError as exc:
            raise FileWriteError(f"failed to write file {path}: {exc}") from exc


class ModelExporter:
    """
    Exports a cached model into a self-contained directory.

    Layers are processed one at a time in manifest order. The first failure
    aborts the export and whatever was already written stays on disk.
    """

    def __init__(self, config: ExportConfig | None = None) -> None:
        self.config = config or ExportConfig()

    def export(self, name: str, output_dir: str | Path | None = None) -> ExportResult:
        """
        Export the model named *name* into *output_dir*.

        When *output_dir* is omitted the model is written to
        ``./<model>-<tag>``. Returns an ``ExportResult`` describing the
        files produced.
        """
        reference = ModelReference.parse(name)
        if output_dir is None:
            output_dir = Path(f"{reference.model}-{reference.tag}")
        log = logger.bind(model=reference.display_name, output=str(output_dir))
        log.info("export.start", source=reference.source)

        manifest = read_manifest(locate_manifest(reference, self.config))

        target = ExportTarget(output_dir)
        target.create()
        target.write_provenance(reference.source)

        result = ExportResult(
            reference=reference,
            output_dir=target.path,
            files=[_SOURCE_FILENAME],
        )
        for layer in manifest.layers:
            self.export_layer(layer, target, result)
            result.layer_count += 1

        log.info(
            "export.done",
            layers=result.layer_count,
            definition_lines=result.definition_lines,
        )
        return result

    def read_blob(self, layer: Layer) -> bytes:
        """Return the blob content for *layer* from the cache."""
        path = self.config.blobs_dir / layer.blob_name
        try:
            data = path.read_bytes()
        except FileNotFoundError as exc:
            raise BlobNotFoundError(f"blob not found for {layer.digest}: {path}") from exc
        except OSError as exc:
            raise BlobReadError(f"failed to read blob {path}: {exc}") from exc

        if self.config.verify_digests and layer.digest.startswith("sha256:"):
            actual = _sha256_bytes(data)
            if actual != layer.digest:
                raise DigestMismatchError(
                    f"digest mismatch for {path}: expected {layer.digest}, got {actual}"
                )
        return data

    def export_layer(self, layer: Layer, target: ExportTarget, result: ExportResult) -> None:
        """Write the artifact(s) for a single layer into *target*."""
        data = self.read_blob(layer)
        kind = layer.kind

        if kind == "model":
            target.write_weights(data)
            result.weights_written = True
            if _WEIGHTS_FILENAME not in result.files:
                result.files.append(_WEIGHTS_FILENAME)
            self._append(target, result, "FROM ./model.bin\n")
        elif kind == "params":
            for key, value in self._decode_params(layer, data).items():
                # Only list values become PARAMETER lines; scalars are skipped.
                if not isinstance(value, list):
                    continue
                for item in value:
                    self._append(
                        target, result, f'PARAMETER {key} "{render_parameter(item)}"\n'
                    )
        else:
            text = data.decode("utf-8", errors="replace")
            self._append(target, result, f'{kind.upper()} """{escape_text(text)}"""\n')

        logger.debug("layer.exported", digest=layer.digest, kind=kind, size=len(data))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _decode_params(layer: Layer, data: bytes) -> dict[str, Any]:
        try:
            params = json.loads(data)
        except ValueError as exc:
            raise LayerParseError(
                f"failed to decode params layer {layer.digest}: {exc}"
            ) from exc
        if not isinstance(params, dict):
            raise LayerParseError(
                f"params layer {layer.digest} is not a JSON object"
            )
        return params

    @staticmethod
    def _append(target: ExportTarget, result: ExportResult, line: str) -> None:
        target.append_line(line)
        result.definition_lines += 1
        if _DEFINITION_FILENAME not in result.files:
            result.files.append(_DEFINITION_FILENAME)
