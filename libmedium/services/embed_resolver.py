from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from html import escape
from typing import Any, Protocol
from urllib.parse import parse_qs, quote, urlparse

import httpx

from libmedium.errors import UpstreamTransportError
from libmedium.models.post import GistFile, Paragraph, ParagraphKind, ResolvedEmbed
from libmedium.telemetry import TelemetryClient

LOGGER = logging.getLogger("libmedium.embeds")

GIST_HOST = "gist.github.com"


class EmbedProvider(Protocol):
    name: str

    def matches(self, url: str) -> bool:
        ...

    async def fetch(self, url: str) -> ResolvedEmbed:
        ...


def gist_id_from_url(url: str) -> str | None:
    parsed = urlparse(url)
    segments = [segment for segment in parsed.path.split("/") if segment]
    if not segments:
        return None
    gist_id = segments[-1].removesuffix(".js")
    return gist_id or None


def _selected_file(url: str) -> str | None:
    values = parse_qs(urlparse(url).query).get("file")
    if not values:
        return None
    return values[0].strip() or None


class GistProvider:
    """Resolves gist.github.com embeds through the GitHub gists API."""

    name = "gist"

    def __init__(self, *, http_client: httpx.AsyncClient, api_base_url: str) -> None:
        self._http_client = http_client
        self._api_base_url = api_base_url.rstrip("/")

    def matches(self, url: str) -> bool:
        host = (urlparse(url).hostname or "").lower()
        return host == GIST_HOST and gist_id_from_url(url) is not None

    async def fetch(self, url: str) -> ResolvedEmbed:
        gist_id = gist_id_from_url(url)
        if gist_id is None:
            raise UpstreamTransportError(f"gist url has no id url={url}")

        api_url = f"{self._api_base_url}/gists/{quote(gist_id, safe='')}"
        try:
            response = await self._http_client.get(
                api_url,
                headers={"Accept": "application/vnd.github+json"},
            )
        except (httpx.HTTPError, TimeoutError) as exc:
            raise UpstreamTransportError(f"gist request failed gist_id={gist_id}: {exc}") from exc

        if not response.is_success:
            raise UpstreamTransportError(
                f"gist api responded with status={response.status_code} gist_id={gist_id}",
                upstream_status=response.status_code,
            )
        try:
            document = response.json()
        except ValueError as exc:
            raise UpstreamTransportError(f"gist api returned non-JSON gist_id={gist_id}") from exc

        files = _parse_gist_files(document, gist_id=gist_id)
        wanted = _selected_file(url)
        if wanted is not None:
            selected = tuple(
                item for item in files if _file_anchor(item.filename) == _file_anchor(wanted)
            )
            files = selected or files
        html_url = document.get("html_url") if isinstance(document.get("html_url"), str) else url
        return ResolvedEmbed(
            url=url,
            provider=self.name,
            html=render_gist(files, html_url=html_url),
            files=files,
        )


def _parse_gist_files(document: Any, *, gist_id: str) -> tuple[GistFile, ...]:
    raw_files = document.get("files") if isinstance(document, dict) else None
    if not isinstance(raw_files, dict) or not raw_files:
        raise UpstreamTransportError(f"gist payload has no files gist_id={gist_id}")

    files: list[GistFile] = []
    for key, raw_file in raw_files.items():
        if not isinstance(raw_file, dict) or not isinstance(raw_file.get("content"), str):
            raise UpstreamTransportError(f"gist file without content gist_id={gist_id} file={key}")
        language = raw_file.get("language")
        files.append(
            GistFile(
                filename=str(raw_file.get("filename") or key),
                language=language if isinstance(language, str) else None,
                content=raw_file["content"],
            )
        )
    return tuple(files)


def _file_anchor(filename: str) -> str:
    return filename.lower().replace(".", "-")


def render_gist(files: Sequence[GistFile], *, html_url: str) -> str:
    parts = ['<figure class="gist">']
    for item in files:
        anchor = f"{html_url}#file-{_file_anchor(item.filename)}"
        code_class = ""
        if item.language:
            code_class = f' class="language-{escape(item.language.lower(), quote=True)}"'
        parts.append(
            '<div class="gist-file">'
            f'<div class="gist-file-name"><a href="{escape(anchor, quote=True)}">'
            f"{escape(item.filename, quote=False)}</a></div>"
            f"<pre><code{code_class}>{escape(item.content, quote=False)}</code></pre>"
            "</div>"
        )
    parts.append(
        f'<figcaption><a href="{escape(html_url, quote=True)}">View gist on GitHub</a></figcaption>'
    )
    parts.append("</figure>")
    return "".join(parts)


class EmbedResolver:
    def __init__(
        self,
        *,
        providers: Sequence[EmbedProvider],
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._providers = tuple(providers)
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()

    def embed_targets(self, paragraphs: Sequence[Paragraph]) -> dict[str, EmbedProvider]:
        """Map each distinct supported embed URL to the provider that serves it."""
        targets: dict[str, EmbedProvider] = {}
        for paragraph in paragraphs:
            if paragraph.kind is not ParagraphKind.IFRAME:
                continue
            url = paragraph.embed_url
            if not url or url in targets:
                continue
            provider = next((item for item in self._providers if item.matches(url)), None)
            if provider is not None:
                targets[url] = provider
        return targets

    async def resolve(self, paragraphs: Sequence[Paragraph]) -> dict[str, ResolvedEmbed]:
        """Fetch every supported embed concurrently; any failure fails the whole set."""
        targets = self.embed_targets(paragraphs)
        if not targets:
            return {}

        with self._telemetry.timed("embed.resolve", embed_count=len(targets)):
            try:
                async with asyncio.TaskGroup() as group:
                    tasks = {
                        url: group.create_task(provider.fetch(url))
                        for url, provider in targets.items()
                    }
            except ExceptionGroup as exc_group:
                failures = [
                    exc for exc in exc_group.exceptions if isinstance(exc, UpstreamTransportError)
                ]
                if len(failures) != len(exc_group.exceptions):
                    raise
                LOGGER.warning(
                    "embed resolution failed failures=%s embeds=%s",
                    len(failures),
                    len(targets),
                )
                raise failures[0]

        return {url: task.result() for url, task in tasks.items()}
