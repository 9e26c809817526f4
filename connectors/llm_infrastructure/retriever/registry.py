"""Registry for retriever implementations."""

from __future__ import annotations

from typing import Any, Type

from .base import BaseRetriever


class RetrieverRegistry:
    """Global registry for retrievers.

    Example:
        ```python
        retriever = get_retriever("qdrant", client=client, collection="docs", embedding=embedder)
        docs = retriever.retrieve("what is milvus?", top_k=3)
        ```
    """

    _registry: dict[str, dict[str, Type[BaseRetriever]]] = {}

    @classmethod
    def register(cls, name: str, retriever_cls: Type[BaseRetriever], version: str = "v1") -> None:
        cls._registry.setdefault(name, {})
        if version in cls._registry[name]:
            raise ValueError(f"Retriever '{name}' version '{version}' already registered")
        cls._registry[name][version] = retriever_cls

    @classmethod
    def get(cls, name: str, version: str = "v1", **kwargs: Any) -> BaseRetriever:
        if name not in cls._registry:
            available = ", ".join(cls._registry.keys())
            raise ValueError(f"Unknown retriever '{name}'. Available: {available}")
        if version not in cls._registry[name]:
            versions = ", ".join(cls._registry[name].keys())
            raise ValueError(f"Unknown version '{version}' for '{name}'. Available: {versions}")
        retriever_cls = cls._registry[name][version]
        kwargs.setdefault("alias", name)
        return retriever_cls(**kwargs)

    @classmethod
    def list_methods(cls) -> dict[str, list[str]]:
        return {name: list(versions.keys()) for name, versions in cls._registry.items()}


def register_retriever(name: str, version: str = "v1"):
    """Decorator to register a retriever adapter."""
    def decorator(cls: Type[BaseRetriever]) -> Type[BaseRetriever]:
        RetrieverRegistry.register(name, cls, version=version)
        return cls
    return decorator


def get_retriever(name: str, version: str = "v1", **kwargs: Any) -> BaseRetriever:
    return RetrieverRegistry.get(name, version=version, **kwargs)


__all__ = ["RetrieverRegistry", "register_retriever", "get_retriever"]
