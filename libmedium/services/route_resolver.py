from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import quote, urlparse

from libmedium.errors import InvalidPostPathError
from libmedium.models.post import PostLight

LOGGER = logging.getLogger("libmedium.routes")

PAGE_ROUTE = "/{username}/{post}"
BY_POST_ID_ROUTE = "/utils/post/{post_id}"
SHORT_POST_ROUTE = "/p/{post_id}"
TOP_LEVEL_POST_ROUTE = "/{post}"
ASSET_ROUTE = "/asset/medium/{name:path}"
FAVICON_ROUTE = "/favicon.ico"
# First segments owned by local routes; never a username or publication.
RESERVED_PREFIXES: frozenset[str] = frozenset({"asset", "p", "utils"})


class LightPostSource(Protocol):
    async def get_light_post(self, post_id: str) -> PostLight:
        ...


@dataclass(frozen=True)
class CanonicalTarget:
    username: str
    slug: str

    @property
    def path(self) -> str:
        return post_page_path(self.username, self.slug)


def extract_post_id(segment: str) -> str:
    """Return the post id encoded after the last dash of a slug segment.

    A segment without any dash is returned whole; Medium serves bare ids
    under the same routes. File-like segments such as ``favicon.ico`` are
    rejected before any upstream lookup.
    """
    post_id = segment.strip().split("-")[-1]
    if not post_id or "." in post_id:
        raise InvalidPostPathError(segment)
    return post_id


def extract_page_post_id(username: str, segment: str) -> str:
    """Like :func:`extract_post_id`, for the two-segment page route."""
    if username.strip().lower() in RESERVED_PREFIXES:
        raise InvalidPostPathError(f"{username}/{segment}")
    return extract_post_id(segment)


def extract_post_id_from_url(value: str) -> str:
    """Accept a full Medium URL, a local path or a bare slug segment."""
    parsed = urlparse(value.strip())
    segments = [segment for segment in parsed.path.split("/") if segment]
    if not segments:
        raise InvalidPostPathError(value)
    return extract_post_id(segments[-1])


def post_page_path(username: str, slug: str) -> str:
    handle = username if username.startswith("@") else f"@{username}"
    return PAGE_ROUTE.replace("{username}", quote(handle, safe="@")).replace(
        "{post}", quote(slug, safe="")
    )


def by_post_id_path(post_id: str) -> str:
    return BY_POST_ID_ROUTE.replace("{post_id}", quote(post_id, safe=""))


def asset_path(name: str) -> str:
    return ASSET_ROUTE.replace("{name:path}", quote(name, safe="*/"))


class RouteResolver:
    def __init__(self, *, content_client: LightPostSource) -> None:
        self._content_client = content_client

    async def canonical_redirect(self, post_id: str) -> CanonicalTarget:
        # Light metadata only; redirects never pay for the paragraph payload.
        light = await self._content_client.get_light_post(post_id)
        target = CanonicalTarget(username=light.username, slug=light.slug)
        LOGGER.debug("resolved canonical target post_id=%s path=%s", post_id, target.path)
        return target

    async def redirect_for_segment(self, segment: str) -> CanonicalTarget:
        return await self.canonical_redirect(extract_post_id(segment))
