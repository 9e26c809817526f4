"""Registry for embedding methods."""

from typing import Any, Type

from .base import BaseEmbedder


class EmbedderRegistry:
    """Global registry for embedding methods.

    Example:
        ```python
        embedder = get_embedder("tei", endpoint_url="http://tei:80")
        vectors = embedder.embed_strings(["hello world"])
        ```
    """

    _registry: dict[str, dict[str, Type[BaseEmbedder]]] = {}

    @classmethod
    def register(
        cls,
        name: str,
        embedder_cls: Type[BaseEmbedder],
        version: str = "v1",
    ) -> None:
        cls._registry.setdefault(name, {})
        if version in cls._registry[name]:
            raise ValueError(f"Embedder '{name}' version '{version}' already registered")
        cls._registry[name][version] = embedder_cls

    @classmethod
    def get(
        cls,
        name: str,
        version: str = "v1",
        **kwargs: Any,
    ) -> BaseEmbedder:
        if name not in cls._registry:
            available = ", ".join(cls._registry.keys())
            raise ValueError(f"Unknown embedding method: '{name}'. Available: {available}")
        if version not in cls._registry[name]:
            available_versions = ", ".join(cls._registry[name].keys())
            raise ValueError(
                f"Unknown version '{version}' for method '{name}'. "
                f"Available versions: {available_versions}"
            )
        embedder_cls = cls._registry[name][version]
        kwargs.setdefault("alias", name)
        return embedder_cls(**kwargs)

    @classmethod
    def list_methods(cls) -> dict[str, list[str]]:
        return {name: list(versions.keys()) for name, versions in cls._registry.items()}


def register_embedder(name: str, version: str = "v1"):
    """Decorator to register an embedder class."""
    def decorator(cls: Type[BaseEmbedder]) -> Type[BaseEmbedder]:
        EmbedderRegistry.register(name, cls, version=version)
        return cls
    return decorator


def get_embedder(name: str, version: str = "v1", **kwargs: Any) -> BaseEmbedder:
    return EmbedderRegistry.get(name, version=version, **kwargs)


__all__ = ["EmbedderRegistry", "register_embedder", "get_embedder"]
