"""Image ingestion for user avatars."""

import logging

import asyncpg
from shared.models.image import Image
from shared.repositories.image import ImageRepository

from .id_provider import IdProvider

logger = logging.getLogger(__name__)


class ImageService:
    """Stores uploaded images and hands back their asset id."""

    def __init__(self, repo: ImageRepository, id_provider: IdProvider) -> None:
        self.repo = repo
        self.id_provider = id_provider

    async def upload(
        self, content: bytes, content_type: str, conn: asyncpg.Connection | None = None
    ) -> str:
        """Persist *content* and return the new image id."""

        async def insert(image_id: str) -> str:
            await self.repo.insert(
                Image(id=image_id, content=content, content_type=content_type), conn=conn
            )
            return image_id

        image_id = await self.id_provider.allocate(self.repo.exists, insert)
        logger.debug(f"Stored image {image_id} ({content_type}, {len(content)} bytes)")
        return image_id

    async def get(self, image_id: str) -> Image | None:
        return await self.repo.get(image_id)
