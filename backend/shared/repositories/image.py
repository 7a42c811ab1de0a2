"""Repository for the images table."""

from __future__ import annotations

import asyncpg

from shared.database import use_connection
from shared.errors import IdCollisionError
from shared.models.image import Image


class ImageRepository:
    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def exists(self, image_id: str) -> bool:
        async with self.pool.acquire() as conn:
            return bool(
                await conn.fetchval("SELECT EXISTS(SELECT 1 FROM images WHERE id = $1)", image_id)
            )

    async def get(self, image_id: str) -> Image | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT id, content, content_type, created_at FROM images WHERE id = $1",
                image_id,
            )
            return Image(**dict(row)) if row else None

    async def insert(self, image: Image, conn: asyncpg.Connection | None = None) -> None:
        async with use_connection(self.pool, conn) as c:
            try:
                async with c.transaction():
                    await c.execute(
                        "INSERT INTO images (id, content, content_type) VALUES ($1, $2, $3)",
                        image.id,
                        image.content,
                        image.content_type,
                    )
            except asyncpg.UniqueViolationError as e:
                raise IdCollisionError("images", image.id) from e
