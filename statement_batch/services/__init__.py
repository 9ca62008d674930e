"""Batch generation services."""

from statement_batch.services.driver import GenerationDriver, ProgressCallback

__all__ = ["GenerationDriver", "ProgressCallback"]
