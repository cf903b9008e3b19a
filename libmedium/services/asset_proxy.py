from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import quote

import httpx

from libmedium.errors import UpstreamTransportError

LOGGER = logging.getLogger("libmedium.assets")

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class AssetNotFoundError(UpstreamTransportError):
    status_code = 404
    public_message = "Asset not found."


@dataclass(frozen=True)
class ProxiedAsset:
    content: bytes
    content_type: str
    cache_control: str


def cache_control_header(max_age_seconds: int) -> str:
    return f"public, immutable, max-age={max_age_seconds}"


class AssetProxy:
    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        asset_base_url: str,
        cache_max_age_seconds: int,
    ) -> None:
        self._http_client = http_client
        self._asset_base_url = asset_base_url.rstrip("/")
        self._cache_control = cache_control_header(cache_max_age_seconds)

    async def fetch(self, name: str) -> ProxiedAsset:
        url = f"{self._asset_base_url}/{quote(name.lstrip('/'), safe='*/:,=')}"
        try:
            response = await self._http_client.get(url)
        except httpx.HTTPError as exc:
            raise UpstreamTransportError(f"asset request failed name={name}: {exc}") from exc

        if response.status_code == 404:
            raise AssetNotFoundError(f"asset not found name={name}", upstream_status=404)
        if not response.is_success:
            LOGGER.warning("asset fetch failed name=%s status=%s", name, response.status_code)
            raise UpstreamTransportError(
                f"asset cdn responded with status={response.status_code}",
                upstream_status=response.status_code,
            )
        return ProxiedAsset(
            content=response.content,
            content_type=response.headers.get("content-type", DEFAULT_CONTENT_TYPE),
            cache_control=self._cache_control,
        )
