"""Export locally cached Ollama models and supervise the Ollama server."""

from .core import ExportTarget, ModelExporter
from .models import ExportConfig, ModelReference
from .supervisor import ProcessSupervisor

__version__ = "0.1.0"

__all__ = [
    "ExportConfig",
    "ExportTarget",
    "ModelExporter",
    "ModelReference",
    "ProcessSupervisor",
]
