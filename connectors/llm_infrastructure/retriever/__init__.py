"""Retrievers that query vector stores and return scored documents."""

from .base import BaseRetriever
from .registry import RetrieverRegistry, get_retriever, register_retriever

# Trigger adapter registration side effects
from . import adapters  # noqa: F401

__all__ = ["BaseRetriever", "RetrieverRegistry", "get_retriever", "register_retriever"]
