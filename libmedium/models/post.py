from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

LOGGER = logging.getLogger("libmedium.models")


class ParagraphKind(StrEnum):
    TEXT = "P"
    HEADING_2 = "H2"
    HEADING_3 = "H3"
    HEADING_4 = "H4"
    BLOCKQUOTE = "BQ"
    PULL_QUOTE = "PQ"
    CODE_BLOCK = "PRE"
    UNORDERED_ITEM = "ULI"
    ORDERED_ITEM = "OLI"
    IMAGE = "IMG"
    IFRAME = "IFRAME"
    MIXTAPE = "MIXTAPE_EMBED"
    UNKNOWN = "UNKNOWN"


class MarkupKind(StrEnum):
    LINK = "A"
    STRONG = "STRONG"
    EMPHASIS = "EM"
    STRIKE = "STRIKE"
    CODE = "CODE"
    UNKNOWN = "UNKNOWN"


def _coerce_kind(value: Any, enum_type: type[StrEnum], unknown: StrEnum) -> StrEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        return unknown
    try:
        return enum_type(value.strip().upper())
    except ValueError:
        return unknown


class _UpstreamModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class MarkupRange(_UpstreamModel):
    kind: MarkupKind = Field(default=MarkupKind.UNKNOWN, alias="type")
    start: int = 0
    end: int = 0
    href: str | None = None
    anchor_type: str | None = None
    user_id: str | None = None

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, value: Any) -> StrEnum:
        return _coerce_kind(value, MarkupKind, MarkupKind.UNKNOWN)

    @property
    def length(self) -> int:
        return self.end - self.start


class MediaResource(_UpstreamModel):
    href: str | None = None
    iframe_src: str | None = None
    iframe_width: int | None = None
    iframe_height: int | None = None


class IframeReference(_UpstreamModel):
    media_resource: MediaResource | None = None


class ImageMetadata(_UpstreamModel):
    id: str
    original_width: int | None = None
    original_height: int | None = None
    alt: str | None = None


class MixtapeMetadata(_UpstreamModel):
    href: str | None = None


class CodeBlockMetadata(_UpstreamModel):
    lang: str | None = None


class Paragraph(_UpstreamModel):
    name: str | None = None
    kind: ParagraphKind = Field(default=ParagraphKind.UNKNOWN, alias="type")
    text: str = ""
    markups: tuple[MarkupRange, ...] = ()
    iframe: IframeReference | None = None
    metadata: ImageMetadata | None = None
    mixtape_metadata: MixtapeMetadata | None = None
    code_block_metadata: CodeBlockMetadata | None = None

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, value: Any) -> StrEnum:
        return _coerce_kind(value, ParagraphKind, ParagraphKind.UNKNOWN)

    @field_validator("text", mode="before")
    @classmethod
    def _normalize_text(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("markups", mode="before")
    @classmethod
    def _normalize_markups(cls, value: Any) -> Any:
        if value is None:
            return ()
        if not isinstance(value, list | tuple):
            LOGGER.debug("dropping markups of unexpected type=%s", type(value).__name__)
            return ()
        # One bad range only loses itself; the paragraph still renders.
        markups: list[MarkupRange] = []
        for raw in value:
            try:
                markups.append(MarkupRange.model_validate(raw))
            except ValidationError as exc:
                LOGGER.debug("dropping markup range errors=%s", exc.error_count())
        return tuple(markups)

    @property
    def embed_url(self) -> str | None:
        if self.iframe is None or self.iframe.media_resource is None:
            return None
        return self.iframe.media_resource.href


class BodyModel(_UpstreamModel):
    paragraphs: tuple[Paragraph, ...] = ()


class PostContent(_UpstreamModel):
    body_model: BodyModel = Field(default_factory=BodyModel)


class Creator(_UpstreamModel):
    id: str | None = None
    name: str | None = None
    username: str
    image_id: str | None = None


class PreviewImage(_UpstreamModel):
    id: str | None = None


class PreviewContent(_UpstreamModel):
    subtitle: str | None = None


class Post(_UpstreamModel):
    """A full post as returned by the content API, immutable for the request."""

    id: str
    title: str = ""
    created_at: int
    reading_time: float = 0.0
    unique_slug: str
    creator: Creator
    preview_image: PreviewImage | None = None
    preview_content: PreviewContent | None = None
    content: PostContent = Field(default_factory=PostContent)

    @property
    def paragraphs(self) -> tuple[Paragraph, ...]:
        return self.content.body_model.paragraphs

    @property
    def preview_image_id(self) -> str | None:
        if self.preview_image is None:
            return None
        return self.preview_image.id or None

    @property
    def subtitle(self) -> str | None:
        if self.preview_content is None:
            return None
        return self.preview_content.subtitle


class LightCreator(_UpstreamModel):
    username: str


class PostLight(_UpstreamModel):
    unique_slug: str
    creator: LightCreator

    @property
    def username(self) -> str:
        return self.creator.username

    @property
    def slug(self) -> str:
        return self.unique_slug


@dataclass(frozen=True)
class GistFile:
    filename: str
    language: str | None
    content: str


@dataclass(frozen=True)
class ResolvedEmbed:
    url: str
    provider: str
    html: str
    files: tuple[GistFile, ...] = ()


@dataclass(frozen=True)
class RenderDocument:
    post_id: str
    post: Post
    date: str
    reading_time: int
    preview_image_url: str | None
    canonical_path: str
    paragraphs: tuple[str, ...]
    embeds: dict[str, ResolvedEmbed] = field(default_factory=dict)
