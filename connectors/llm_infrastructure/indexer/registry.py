"""Registry for indexer implementations."""

from __future__ import annotations

from typing import Any, Type

from .base import BaseIndexer


class IndexerRegistry:
    """Global registry for indexers.

    Example:
        ```python
        indexer = get_indexer("pgvector", conn=conn, embedding=embedder)
        ids = indexer.store(docs)
        ```
    """

    _registry: dict[str, dict[str, Type[BaseIndexer]]] = {}

    @classmethod
    def register(cls, name: str, indexer_cls: Type[BaseIndexer], version: str = "v1") -> None:
        cls._registry.setdefault(name, {})
        if version in cls._registry[name]:
            raise ValueError(f"Indexer '{name}' version '{version}' already registered")
        cls._registry[name][version] = indexer_cls

    @classmethod
    def get(cls, name: str, version: str = "v1", **kwargs: Any) -> BaseIndexer:
        if name not in cls._registry:
            available = ", ".join(cls._registry.keys())
            raise ValueError(f"Unknown indexer '{name}'. Available: {available}")
        if version not in cls._registry[name]:
            versions = ", ".join(cls._registry[name].keys())
            raise ValueError(f"Unknown version '{version}' for '{name}'. Available: {versions}")
        indexer_cls = cls._registry[name][version]
        kwargs.setdefault("alias", name)
        return indexer_cls(**kwargs)

    @classmethod
    def list_methods(cls) -> dict[str, list[str]]:
        return {name: list(versions.keys()) for name, versions in cls._registry.items()}


def register_indexer(name: str, version: str = "v1"):
    """Decorator to register an indexer adapter."""
    def decorator(cls: Type[BaseIndexer]) -> Type[BaseIndexer]:
        IndexerRegistry.register(name, cls, version=version)
        return cls
    return decorator


def get_indexer(name: str, version: str = "v1", **kwargs: Any) -> BaseIndexer:
    return IndexerRegistry.get(name, version=version, **kwargs)


__all__ = ["IndexerRegistry", "register_indexer", "get_indexer"]
