"""Text Embeddings Inference (TEI) embedder."""

from __future__ import annotations

from typing import Any

import httpx
import numpy as np
import numpy.typing as npt

from connectors.config.settings import tei_settings

from ..base import BaseEmbedder
from ..registry import register_embedder


@register_embedder("tei", version="v1")
class TEIEmbedder(BaseEmbedder):
    """HTTP client for a TEI server's ``/embed`` endpoint."""

    def __init__(
        self,
        endpoint_url: str | None = None,
        timeout: float | None = None,
        normalize: bool = True,
        client: httpx.Client | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.endpoint_url = (endpoint_url or tei_settings.endpoint_url).rstrip("/")
        if not self.endpoint_url:
            raise ValueError("endpoint_url is required for TEI embedder")
        self.timeout = timeout if timeout is not None else tei_settings.timeout
        self.normalize = normalize
        self._client = client or httpx.Client(timeout=self.timeout)

    def _post(self, inputs: str | list[str]) -> npt.NDArray[np.float32]:
        response = self._client.post(
            f"{self.endpoint_url}/embed",
            json={"inputs": inputs, "normalize": self.normalize},
        )
        response.raise_for_status()
        return np.array(response.json(), dtype=np.float32)

    def embed(self, text: str) -> npt.NDArray[np.float32]:
        embedding = self._post(text)
        if embedding.ndim > 1:
            embedding = embedding[0]
        if self.dimension is None:
            self.dimension = int(embedding.shape[-1])
        return embedding

    def embed_batch(
        self,
        texts: list[str],
        batch_size: int = 32,
    ) -> npt.NDArray[np.float32]:
        batches = [self._post(texts[i : i + batch_size]) for i in range(0, len(texts), batch_size)]
        stacked = np.vstack(batches) if batches else np.zeros((0, 0), dtype=np.float32)
        if self.dimension is None and stacked.size > 0:
            self.dimension = int(stacked.shape[-1])
        return stacked

    def close(self) -> None:
        self._client.close()


__all__ = ["TEIEmbedder"]
