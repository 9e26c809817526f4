"""Field mapping shared by the Elasticsearch 8 indexer and retriever."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

DOC_FIELD_CONTENT = "eino_doc_content"


def default_vector_field(field_name: str) -> str:
    """``vector_<field>``, the vector field paired with a text field."""
    return f"vector_{field_name}"


@dataclass
class FieldValue:
    """One source field of an indexed document.

    Attributes:
        value: Stored as-is under the field name.
        embed_key: When set, ``value`` is also embedded and the vector is
            stored under this key.
        stringify: Turns a non-string ``value`` into the text to embed.
    """

    value: Any
    embed_key: str = ""
    stringify: Callable[[Any], str] | None = None

    def embedding_text(self) -> str:
        if self.stringify is not None:
            return self.stringify(self.value)
        if isinstance(self.value, str):
            return self.value
        raise ValueError(f"field value of type {type(self.value).__name__} needs stringify to be embedded")


__all__ = ["DOC_FIELD_CONTENT", "FieldValue", "default_vector_field"]
