"""Embedding and vision model providers."""

import asyncio
from typing import Any, Protocol

import openai
import structlog
from openai import AsyncOpenAI

from catalog_sync_service.config import Settings, get_settings
from catalog_sync_service.services.errors import EmbeddingProviderError

logger = structlog.get_logger()

IMAGE_DESCRIPTION_PROMPT = (
    "Describe this product image in detail for search purposes. Include colors, "
    "style, materials, shape, and key visual features. Keep it concise but descriptive."
)


class EmbeddingProvider(Protocol):
    """Remote (or local) models used to vectorize catalog items."""

    async def embed_text(self, text: str) -> list[float]: ...

    async def describe_image(self, image_url: str) -> str: ...


class OpenAIEmbeddingProvider:
    """Text embeddings and image descriptions from the OpenAI API."""

    def __init__(
        self,
        api_key: str | None = None,
        embedding_model: str | None = None,
        vision_model: str | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
        client: AsyncOpenAI | None = None,
    ):
        settings = get_settings()
        self.api_key = api_key or settings.openai_api_key or None
        self.timeout = timeout or settings.external_call_timeout
        self.embedding_model = embedding_model or settings.embedding_model
        self.vision_model = vision_model or settings.vision_model
        self.max_tokens = max_tokens or settings.image_description_max_tokens
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        """Lazily create the client so a missing key surfaces per call."""
        if self._client is None:
            try:
                self._client = AsyncOpenAI(api_key=self.api_key, timeout=self.timeout)
            except openai.OpenAIError as e:
                raise EmbeddingProviderError(f"OpenAI client unavailable: {e}") from e
        return self._client

    async def embed_text(self, text: str) -> list[float]:
        try:
            response = await self.client.embeddings.create(
                model=self.embedding_model, input=text
            )
        except openai.OpenAIError as e:
            raise EmbeddingProviderError(f"Text embedding failed: {e}") from e
        return list(response.data[0].embedding)

    async def describe_image(self, image_url: str) -> str:
        """Ask the vision model for a short, search-oriented description."""
        try:
            response = await self.client.chat.completions.create(
                model=self.vision_model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": IMAGE_DESCRIPTION_PROMPT},
                            {"type": "image_url", "image_url": {"url": image_url}},
                        ],
                    }
                ],
                max_tokens=self.max_tokens,
            )
        except openai.OpenAIError as e:
            raise EmbeddingProviderError(f"Image description failed: {e}") from e
        if not response.choices:
            raise EmbeddingProviderError(f"Vision model returned no choices for {image_url}")
        return (response.choices[0].message.content or "").strip()


# Lazy-loaded model to avoid loading on import
_local_model: Any = None


def get_local_model(model_name: str) -> Any:
    """Get or initialize the sentence-transformers model."""
    global _local_model
    if _local_model is None:
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as e:
            raise EmbeddingProviderError(
                "sentence-transformers is not installed; install the 'local' extra"
            ) from e
        logger.info("Loading embedding model", model=model_name)
        _local_model = SentenceTransformer(model_name)
        logger.info(
            "Embedding model loaded",
            model=model_name,
            dimension=_local_model.get_sentence_embedding_dimension(),
        )
    return _local_model


class LocalEmbeddingProvider:
    """Text embeddings from a local sentence-transformers model.

    Image descriptions still come from the OpenAI vision model.
    """

    def __init__(
        self,
        model_name: str | None = None,
        vision: OpenAIEmbeddingProvider | None = None,
    ):
        settings = get_settings()
        self.model_name = model_name or settings.local_embedding_model
        self.vision = vision or OpenAIEmbeddingProvider()

    async def embed_text(self, text: str) -> list[float]:
        model = get_local_model(self.model_name)
        try:
            embedding = await asyncio.to_thread(model.encode, text, convert_to_numpy=True)
        except Exception as e:
            raise EmbeddingProviderError(f"Local text embedding failed: {e}") from e
        return embedding.tolist()

    async def describe_image(self, image_url: str) -> str:
        return await self.vision.describe_image(image_url)


def get_embedding_provider(settings: Settings | None = None) -> EmbeddingProvider:
    """Build the provider selected by ``embedding_backend``."""
    settings = settings or get_settings()
    if settings.embedding_backend == "sentence-transformers":
        return LocalEmbeddingProvider(model_name=settings.local_embedding_model)
    return OpenAIEmbeddingProvider()
