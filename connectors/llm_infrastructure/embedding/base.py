"""Base classes for embedding."""

from abc import ABC, abstractmethod
from typing import Any

import numpy as np
import numpy.typing as npt


class BaseEmbedder(ABC):
    """Base class for embedders consumed by indexers and retrievers.

    Subclasses implement ``embed`` and ``embed_batch``; connectors only call
    :meth:`embed_strings`, which returns plain float lists ready to be sent
    to a vector store.

    Example:
        ```python
        @register_embedder("my_embedder", version="v1")
        class MyEmbedder(BaseEmbedder):
            def embed(self, text):
                return np.random.rand(768)

            def embed_batch(self, texts, batch_size=32):
                return np.stack([self.embed(t) for t in texts])
        ```
    """

    def __init__(self, **kwargs: Any) -> None:
        self.config = kwargs
        self.dimension: int | None = None

    @abstractmethod
    def embed(self, text: str) -> npt.NDArray[np.float32]:
        """Embed a single text into a 1D vector."""
        raise NotImplementedError

    @abstractmethod
    def embed_batch(
        self,
        texts: list[str],
        batch_size: int = 32,
    ) -> npt.NDArray[np.float32]:
        """Embed multiple texts.

        Returns:
            Embedding matrix (2D numpy array: [n_texts, dimension])
        """
        raise NotImplementedError

    def embed_strings(self, texts: list[str]) -> list[list[float]]:
        """Embed texts and return one float list per input text."""
        if not texts:
            return []
        return np.asarray(self.embed_batch(list(texts)), dtype=np.float32).tolist()

    def get_dimension(self) -> int:
        if self.dimension is None:
            self.dimension = len(self.embed(""))
        return self.dimension

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(config={self.config})"


__all__ = ["BaseEmbedder"]
