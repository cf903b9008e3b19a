from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Protocol

from libmedium.errors import MissingRequiredFieldError
from libmedium.models.post import Paragraph, Post, RenderDocument, ResolvedEmbed
from libmedium.services.markup import render_paragraphs
from libmedium.services.route_resolver import asset_path, post_page_path

LOGGER = logging.getLogger("libmedium.assembler")


class FullPostSource(Protocol):
    async def get_full_post(self, post_id: str) -> Post:
        ...


class EmbedSource(Protocol):
    async def resolve(self, paragraphs: Sequence[Paragraph]) -> Mapping[str, ResolvedEmbed]:
        ...


def format_post_date(created_at_millis: int) -> str:
    """Format an epoch-millis timestamp as ``Jan 5, 2021`` (UTC)."""
    created_at = datetime.fromtimestamp(created_at_millis / 1000, tz=UTC)
    return f"{created_at:%b} {created_at.day}, {created_at.year}"


def whole_minutes(reading_time: float) -> int:
    if not math.isfinite(reading_time) or reading_time < 0:
        return 0
    return math.floor(reading_time)


class PostAssembler:
    def __init__(
        self,
        *,
        content_client: FullPostSource,
        embed_resolver: EmbedSource,
        require_preview_image: bool = False,
    ) -> None:
        self._content_client = content_client
        self._embed_resolver = embed_resolver
        self._require_preview_image = require_preview_image

    async def assemble(
        self,
        post_id: str,
        *,
        require_preview_image: bool | None = None,
    ) -> RenderDocument:
        """Fetch a post and turn it into a render-ready document.

        Upstream failures propagate. Embeds are resolved before any paragraph
        is rendered, so a document is only produced when every embed resolved.
        A missing preview image yields ``preview_image_url=None`` unless the
        caller (or the assembler's default) requires one.
        """
        post = await self._content_client.get_full_post(post_id)

        required = (
            self._require_preview_image
            if require_preview_image is None
            else require_preview_image
        )
        preview_image_url = self._preview_image_url(post, required=required)

        embeds = dict(await self._embed_resolver.resolve(post.paragraphs))
        paragraphs = render_paragraphs(post.paragraphs, embeds)

        LOGGER.debug(
            "assembled post post_id=%s paragraphs=%s embeds=%s",
            post_id,
            len(paragraphs),
            len(embeds),
        )
        return RenderDocument(
            post_id=post_id,
            post=post,
            date=format_post_date(post.created_at),
            reading_time=whole_minutes(post.reading_time),
            preview_image_url=preview_image_url,
            canonical_path=post_page_path(post.creator.username, post.unique_slug),
            paragraphs=paragraphs,
            embeds=embeds,
        )

    def _preview_image_url(self, post: Post, *, required: bool) -> str | None:
        image_id = post.preview_image_id
        if image_id is None:
            if required:
                raise MissingRequiredFieldError("previewImage.id", post_id=post.id)
            return None
        return asset_path(image_id)
