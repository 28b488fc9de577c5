# Copyright (c) MONAI Consortium
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#     http://www.apache.org/licenses/LICENSE-2.0
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
import asyncio
import logging
import math
import numbers
from abc import ABC, abstractmethod
from typing import Any, List, Optional

import numpy as np
import requests

from tool_server.errors import EmbeddingUnavailable

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
DEFAULT_API_URL = "https://router.huggingface.co/hf-inference/models/{model}/pipeline/feature-extraction"


def coerce_vector(payload: Any) -> List[float]:
    """
    Accept a provider response only if it is a non-empty flat sequence of real
    numbers. Anything else (error dict, empty body, token-level matrix) raises
    EmbeddingUnavailable so it never reaches the similarity math.
    """
    if isinstance(payload, np.ndarray):
        if payload.ndim != 1:
            raise EmbeddingUnavailable(f"Failed to get embedding: expected 1-D vector, got shape {payload.shape}")
        payload = payload.tolist()
    if not isinstance(payload, (list, tuple)):
        detail = payload.get("error") if isinstance(payload, dict) else type(payload).__name__
        raise EmbeddingUnavailable(f"Failed to get embedding: {detail}")
    if not payload:
        raise EmbeddingUnavailable("Failed to get embedding: empty vector")
    vector = []
    for value in payload:
        if isinstance(value, bool) or not isinstance(value, numbers.Real) or math.isnan(value):
            raise EmbeddingUnavailable("Failed to get embedding: vector contains non-numeric values")
        vector.append(float(value))
    return vector


class EmbeddingProvider(ABC):
    """Turns one text string into one fixed-length vector."""

    model_name: str

    async def embed(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise EmbeddingUnavailable("Cannot embed empty text")
        loop = asyncio.get_running_loop()
        try:
            payload = await loop.run_in_executor(None, self._compute, text)
        except EmbeddingUnavailable:
            raise
        except Exception as e:
            logger.error(f"Embedding call to {self.model_name} failed: {e}")
            raise EmbeddingUnavailable(f"Failed to get embedding: {e}") from e
        return coerce_vector(payload)

    @abstractmethod
    def _compute(self, text: str) -> Any:
        """Blocking provider call; runs in the default executor."""


class SentenceTransformerEmbeddingProvider(EmbeddingProvider):
    """Local sentence-transformers model, loaded lazily on first use."""

    def __init__(self, model_name: str = DEFAULT_MODEL, device: Optional[str] = None):
        self.model_name = model_name
        self.device = device
        self._model = None

    def _load(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            logger.info(f"Loading embedding model: {self.model_name}")
            self._model = SentenceTransformer(self.model_name, device=self.device)
        return self._model

    def _compute(self, text: str) -> Any:
        # longer inputs are truncated by the model to its max sequence length
        vec = self._load().encode(text, show_progress_bar=False, normalize_embeddings=False)
        return np.asarray(vec, dtype="float32")


class InferenceAPIEmbeddingProvider(EmbeddingProvider):
    """Hugging Face hosted feature-extraction endpoint."""

    def __init__(
        self,
        api_token: str,
        model_name: str = DEFAULT_MODEL,
        api_url: Optional[str] = None,
        timeout: float = 30.0,
    ):
        if not api_token:
            raise ValueError("An API token is required for the inference API provider")
        self.api_token = api_token
        self.model_name = model_name
        self.api_url = (api_url or DEFAULT_API_URL).format(model=model_name)
        self.timeout = timeout

    def _compute(self, text: str) -> Any:
        r = requests.post(
            self.api_url,
            headers={"Authorization": f"Bearer {self.api_token}"},
            json={"inputs": text},
            timeout=self.timeout,
        )
        try:
            payload = r.json()
        except ValueError:
            payload = None
        if r.status_code != 200:
            detail = payload.get("error") if isinstance(payload, dict) else r.text[:200]
            raise EmbeddingUnavailable(f"Failed to get embedding: HTTP {r.status_code} {detail}")
        return payload


def build_embedding_provider(settings) -> EmbeddingProvider:
    emb = settings.embedding
    if emb.provider == "inference_api":
        return InferenceAPIEmbeddingProvider(
            api_token=emb.api_token,
            model_name=emb.model_name,
            api_url=emb.api_url,
            timeout=emb.timeout,
        )
    if emb.provider == "sentence_transformers":
        return SentenceTransformerEmbeddingProvider(model_name=emb.model_name, device=emb.device)
    raise ValueError(f"Unknown embedding provider: {emb.provider}")
