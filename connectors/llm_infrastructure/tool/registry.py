"""Registry for tools."""

from typing import Any, Type

from .base import BaseTool


class ToolRegistry:
    """Global registry for tools.

    Example:
        ```python
        tool = get_tool("bing_search", api_key="...")
        result = tool.invokable_run('{"query": "vector databases"}')
        ```
    """

    _registry: dict[str, dict[str, Type[BaseTool]]] = {}

    @classmethod
    def register(
        cls,
        name: str,
        tool_cls: Type[BaseTool],
        version: str = "v1",
    ) -> None:
        cls._registry.setdefault(name, {})
        if version in cls._registry[name]:
            raise ValueError(f"Tool '{name}' version '{version}' already registered")
        cls._registry[name][version] = tool_cls

    @classmethod
    def get(
        cls,
        name: str,
        version: str = "v1",
        **kwargs: Any,
    ) -> BaseTool:
        if name not in cls._registry:
            available = ", ".join(cls._registry.keys())
            raise ValueError(f"Unknown tool '{name}'. Available: {available}")
        if version not in cls._registry[name]:
            available_versions = ", ".join(cls._registry[name].keys())
            raise ValueError(
                f"Unknown version '{version}' for tool '{name}'. "
                f"Available versions: {available_versions}"
            )
        tool_cls = cls._registry[name][version]
        kwargs.setdefault("alias", name)
        return tool_cls(**kwargs)

    @classmethod
    def list_methods(cls) -> dict[str, list[str]]:
        return {name: list(versions.keys()) for name, versions in cls._registry.items()}


def register_tool(name: str, version: str = "v1"):
    """Decorator to register a tool class."""
    def decorator(cls: Type[BaseTool]) -> Type[BaseTool]:
        ToolRegistry.register(name, cls, version=version)
        return cls
    return decorator


def get_tool(name: str, version: str = "v1", **kwargs: Any) -> BaseTool:
    return ToolRegistry.get(name, version=version, **kwargs)


__all__ = ["ToolRegistry", "register_tool", "get_tool"]
