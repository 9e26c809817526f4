"""Embedding adapters for registry."""

from .tei import TEIEmbedder

__all__ = ["TEIEmbedder"]
