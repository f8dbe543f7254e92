"""Engine module wiring the upload queue components together."""

from metroai.engine.orchestrator import UploadOrchestrator

__all__ = ["UploadOrchestrator"]
