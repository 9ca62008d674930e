"""Batch generation ORM models."""

from statement_batch.models.generation import GenerationItemModel, GenerationJobModel

__all__ = ["GenerationItemModel", "GenerationJobModel"]
