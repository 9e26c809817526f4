"""Embedding infrastructure."""

from .base import BaseEmbedder
from .registry import EmbedderRegistry, get_embedder, register_embedder

# Trigger adapter registration side effects
from . import adapters  # noqa: F401

__all__ = ["BaseEmbedder", "EmbedderRegistry", "get_embedder", "register_embedder"]
