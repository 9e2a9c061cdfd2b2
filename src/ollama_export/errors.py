"""Exception hierarchy for ollama-export."""

from __future__ import annotations

__all__ = [
    "OllamaExportError",
    "InvalidReferenceError",
    "ManifestNotFoundError",
    "ManifestParseError",
    "LayerParseError",
    "TargetExistsError",
    "DirectoryCreateError",
    "BlobNotFoundError",
    "BlobReadError",
    "DigestMismatchError",
    "FileWriteError",
    "SupervisorError",
    "ChildStartError",
    "ChildWaitError",
]


class OllamaExportError(Exception):
    """Base exception for every failure surfaced by the tools."""


class InvalidReferenceError(OllamaExportError, ValueError):
    """The model reference has no model segment or too many segments."""


class ManifestNotFoundError(OllamaExportError, FileNotFoundError):
    """No manifest file exists for the resolved reference."""


class ManifestParseError(OllamaExportError):
    """The manifest could not be read or does not match the expected shape."""


class LayerParseError(ManifestParseError):
    """A params layer blob is not a JSON object."""


class TargetExistsError(OllamaExportError, FileExistsError):
    """The export target path is already present."""


class DirectoryCreateError(OllamaExportError):
    """The export target directory could not be created."""


class BlobNotFoundError(OllamaExportError, FileNotFoundError):
    """A layer's blob file is missing from the cache."""


class BlobReadError(OllamaExportError):
    """A layer's blob file exists but could not be read."""


class DigestMismatchError(OllamaExportError):
    """A blob's content does not hash to its layer digest."""


class FileWriteError(OllamaExportError):
    """Writing or appending an output file failed."""


class SupervisorError(OllamaExportError):
    """Base exception for the serve supervisor."""


class ChildStartError(SupervisorError):
    """The child process could not be started."""


class ChildWaitError(SupervisorError):
    """The child process failed or exited with a non-zero status."""
