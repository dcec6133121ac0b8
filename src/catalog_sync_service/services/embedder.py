"""Combined text and image embeddings for catalog items."""

from dataclasses import dataclass
from typing import Protocol, Sequence

import numpy as np
import structlog

from catalog_sync_service.infrastructure.vector.embeddings import EmbeddingProvider
from catalog_sync_service.services.errors import EmbeddingProviderError

logger = structlog.get_logger()


class DescribedItem(Protocol):
    title: str
    description: str | None
    category: str | None
    tags: Sequence[str]
    price: str
    image_url: str | None


@dataclass(frozen=True)
class EmbeddingResult:
    vector: list[float]
    image_description: str | None = None


def build_item_text(item: DescribedItem) -> str:
    """Flatten an item into the text that gets embedded.

    Parts are title, description, category, space-joined tags and price;
    empty parts are dropped and the rest joined with `` | ``.
    """
    parts = [
        item.title,
        item.description,
        item.category,
        " ".join(tag for tag in item.tags if tag),
        f"Price: {item.price}" if item.price else None,
    ]
    return " | ".join(part for part in parts if part)


def average_vectors(vectors: list[list[float]]) -> list[float]:
    """Element-wise mean of equally sized vectors."""
    if not vectors:
        return []
    return np.mean(np.array(vectors, dtype=np.float32), axis=0).tolist()


class Embedder:
    """Turns catalog items into vectors via an ``EmbeddingProvider``."""

    def __init__(self, provider: EmbeddingProvider, dimension: int | None = None):
        self.provider = provider
        self.dimension = dimension

    def _check_dimension(self, vector: list[float], source: str) -> None:
        if self.dimension is not None and len(vector) != self.dimension:
            raise EmbeddingProviderError(
                f"{source} embedding has {len(vector)} dimensions, expected {self.dimension}"
            )

    async def embed_text(self, text: str) -> list[float]:
        vector = await self.provider.embed_text(text)
        self._check_dimension(vector, "Text")
        return vector

    async def embed_image(self, image_url: str | None) -> tuple[list[float], str]:
        """Describe the image with the vision model, then embed the description."""
        if not image_url:
            raise EmbeddingProviderError("No image URL to describe")
        description = await self.provider.describe_image(image_url)
        if not description:
            raise EmbeddingProviderError(f"Vision model returned no description for {image_url}")
        vector = await self.provider.embed_text(description)
        self._check_dimension(vector, "Image")
        return vector, description

    async def embed_combined(self, text: str, image_url: str | None) -> EmbeddingResult:
        """Average the text and image vectors, falling back to text only.

        A text embedding failure propagates. Any failure on the image side,
        whatever its type, yields the text vector with no image description.
        """
        text_vector = await self.embed_text(text)

        if not image_url:
            return EmbeddingResult(vector=text_vector)

        try:
            image_vector, description = await self.embed_image(image_url)
        except Exception as e:
            logger.warning(
                "Image embedding failed, using text only", image_url=image_url, error=str(e)
            )
            return EmbeddingResult(vector=text_vector)

        if len(image_vector) != len(text_vector):
            logger.warning(
                "Image and text embeddings differ in size, using text only",
                text_dimension=len(text_vector),
                image_dimension=len(image_vector),
            )
            return EmbeddingResult(vector=text_vector)

        return EmbeddingResult(
            vector=average_vectors([text_vector, image_vector]),
            image_description=description,
        )

    async def embed(self, item: DescribedItem) -> EmbeddingResult:
        return await self.embed_combined(build_item_text(item), item.image_url)
