from __future__ import annotations

from functools import lru_cache

import httpx

from libmedium.config import AppSettings, load_settings
from libmedium.services.asset_proxy import AssetProxy
from libmedium.services.embed_resolver import EmbedResolver, GistProvider
from libmedium.services.medium_client import MediumClient
from libmedium.services.post_assembler import PostAssembler
from libmedium.services.renderer import TemplateRenderer
from libmedium.services.route_resolver import RouteResolver
from libmedium.telemetry import TelemetryClient, build_telemetry_client


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_http_client() -> httpx.AsyncClient:
    settings = get_settings()
    return httpx.AsyncClient(
        timeout=settings.http_timeout_seconds,
        headers={"User-Agent": settings.user_agent},
        follow_redirects=True,
    )


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    settings = get_settings()
    return build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


@lru_cache(maxsize=1)
def get_medium_client() -> MediumClient:
    return MediumClient(
        http_client=get_http_client(),
        graphql_url=get_settings().medium_graphql_url,
        telemetry=get_telemetry(),
    )


@lru_cache(maxsize=1)
def get_embed_resolver() -> EmbedResolver:
    return EmbedResolver(
        providers=[
            GistProvider(
                http_client=get_http_client(),
                api_base_url=get_settings().gist_api_base_url,
            )
        ],
        telemetry=get_telemetry(),
    )


@lru_cache(maxsize=1)
def get_post_assembler() -> PostAssembler:
    return PostAssembler(
        content_client=get_medium_client(),
        embed_resolver=get_embed_resolver(),
        require_preview_image=get_settings().require_preview_image,
    )


@lru_cache(maxsize=1)
def get_route_resolver() -> RouteResolver:
    return RouteResolver(content_client=get_medium_client())


@lru_cache(maxsize=1)
def get_asset_proxy() -> AssetProxy:
    settings = get_settings()
    return AssetProxy(
        http_client=get_http_client(),
        asset_base_url=settings.medium_asset_base_url,
        cache_max_age_seconds=settings.asset_cache_max_age_seconds,
    )


@lru_cache(maxsize=1)
def get_renderer() -> TemplateRenderer:
    return TemplateRenderer()


async def close_http_client() -> None:
    if get_http_client.cache_info().currsize:
        await get_http_client().aclose()
    get_http_client.cache_clear()


def reset_cached_dependencies() -> None:
    get_post_assembler.cache_clear()
    get_route_resolver.cache_clear()
    get_asset_proxy.cache_clear()
    get_embed_resolver.cache_clear()
    get_medium_client.cache_clear()
    get_renderer.cache_clear()
    get_http_client.cache_clear()
    get_telemetry.cache_clear()
    get_settings.cache_clear()
