"""SQL helpers shared by the pgvector indexer and retriever.

Identifiers cannot be bound as query parameters, so every table or column
name is validated with :func:`validate_identifier` and then double-quoted
before it is interpolated into a statement.
"""

from __future__ import annotations

import re

from ...errors import ConfigError

DEFAULT_TABLE_NAME = "documents"
DEFAULT_ID_FIELD = "id"
DEFAULT_VECTOR_FIELD = "embedding"
DEFAULT_CONTENT_FIELD = "content"
DEFAULT_METADATA_FIELD = "metadata"

DISTANCE_OPERATORS = {
    "cosine": "<=>",
    "l2": "<->",
    "inner_product": "<#>",
}

# Max dimensions per pgvector column type.
VECTOR_TYPE_LIMITS = (
    ("vector", 2000),
    ("halfvec", 4000),
    ("bit", 64000),
)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate_identifier(name: str) -> None:
    """Reject anything that is not a plain SQL identifier.

    Raises:
        ConfigError: If ``name`` is empty, starts with something other than
            a letter or underscore, or contains other characters than
            letters, digits and underscores.
    """
    if not name:
        raise ConfigError("identifier cannot be empty")
    first = name[0]
    if not (first.isascii() and (first.isalpha() or first == "_")):
        raise ConfigError(f"identifier must start with a letter or underscore: {name!r}")
    if not _IDENTIFIER_RE.match(name):
        raise ConfigError(f"identifier contains invalid character: {name!r}")


def quote_identifier(name: str) -> str:
    validate_identifier(name)
    return f'"{name}"'


def format_vector(vector: list[float]) -> str:
    """pgvector text literal, e.g. ``[0.1,0.2,0.3]``."""
    return "[" + ",".join(repr(float(v)) for v in vector) + "]"


def distance_operator(distance_function: str) -> str:
    try:
        return DISTANCE_OPERATORS[distance_function]
    except KeyError:
        raise ConfigError(f"invalid distance function: {distance_function}") from None


def suitable_vector_type(dimension: int) -> str:
    """Smallest pgvector column type that can hold ``dimension`` values."""
    for vector_type, limit in VECTOR_TYPE_LIMITS:
        if dimension <= limit:
            return vector_type
    return "sparsevec"


__all__ = [
    "DEFAULT_TABLE_NAME",
    "DEFAULT_ID_FIELD",
    "DEFAULT_VECTOR_FIELD",
    "DEFAULT_CONTENT_FIELD",
    "DEFAULT_METADATA_FIELD",
    "DISTANCE_OPERATORS",
    "validate_identifier",
    "quote_identifier",
    "format_vector",
    "distance_operator",
    "suitable_vector_type",
]
