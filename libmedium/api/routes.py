from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from structlog.contextvars import bind_contextvars, reset_contextvars

from libmedium.dependencies import (
    get_asset_proxy,
    get_post_assembler,
    get_renderer,
    get_route_resolver,
)
from libmedium.services.asset_proxy import AssetProxy
from libmedium.services.post_assembler import PostAssembler
from libmedium.services.renderer import TemplateRenderer
from libmedium.services.route_resolver import (
    ASSET_ROUTE,
    BY_POST_ID_ROUTE,
    FAVICON_ROUTE,
    PAGE_ROUTE,
    SHORT_POST_ROUTE,
    TOP_LEVEL_POST_ROUTE,
    RouteResolver,
    extract_page_post_id,
    extract_post_id,
)

router = APIRouter()

REDIRECT_STATUS_CODE = 301
HTML_MEDIA_TYPE = "text/html; charset=utf-8"


def health_check() -> dict[str, str]:
    return {"status": "ok"}


async def _redirect_to_canonical(post_id: str, route_resolver: RouteResolver) -> RedirectResponse:
    context_tokens = bind_contextvars(post_id=post_id)
    try:
        target = await route_resolver.canonical_redirect(post_id)
    finally:
        reset_contextvars(**context_tokens)
    return RedirectResponse(url=target.path, status_code=REDIRECT_STATUS_CODE)


router.add_api_route(
    "/health",
    health_check,
    methods=["GET"],
    tags=["system"],
    operation_id="health_check",
)


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
async def index(
    renderer: Annotated[TemplateRenderer, Depends(get_renderer)],
) -> HTMLResponse:
    return HTMLResponse(renderer.render_index(), media_type=HTML_MEDIA_TYPE)


@router.get(FAVICON_ROUTE, include_in_schema=False)
async def favicon() -> Response:
    return Response(status_code=404)


@router.get(ASSET_ROUTE, tags=["proxy"], operation_id="medium_asset")
async def asset(
    name: str,
    asset_proxy: Annotated[AssetProxy, Depends(get_asset_proxy)],
) -> Response:
    proxied = await asset_proxy.fetch(name)
    return Response(
        content=proxied.content,
        media_type=proxied.content_type,
        headers={"Cache-Control": proxied.cache_control},
    )


@router.get(BY_POST_ID_ROUTE, tags=["proxy"], operation_id="redirect_by_post_id")
async def by_post_id(
    post_id: str,
    route_resolver: Annotated[RouteResolver, Depends(get_route_resolver)],
) -> RedirectResponse:
    return await _redirect_to_canonical(extract_post_id(post_id), route_resolver)


@router.get(SHORT_POST_ROUTE, tags=["proxy"], operation_id="redirect_short_post")
async def short_post(
    post_id: str,
    route_resolver: Annotated[RouteResolver, Depends(get_route_resolver)],
) -> RedirectResponse:
    return await _redirect_to_canonical(extract_post_id(post_id), route_resolver)


@router.get(PAGE_ROUTE, response_class=HTMLResponse, tags=["proxy"], operation_id="post_page")
async def page(
    username: str,
    post: str,
    assembler: Annotated[PostAssembler, Depends(get_post_assembler)],
    renderer: Annotated[TemplateRenderer, Depends(get_renderer)],
) -> HTMLResponse:
    post_id = extract_page_post_id(username, post)
    context_tokens = bind_contextvars(post_id=post_id, post_username=username)
    try:
        document = await assembler.assemble(post_id)
    finally:
        reset_contextvars(**context_tokens)
    return HTMLResponse(renderer.render_post(document), media_type=HTML_MEDIA_TYPE)


@router.get(TOP_LEVEL_POST_ROUTE, tags=["proxy"], operation_id="redirect_top_level_post")
async def top_level_post(
    post: str,
    route_resolver: Annotated[RouteResolver, Depends(get_route_resolver)],
) -> RedirectResponse:
    return await _redirect_to_canonical(extract_post_id(post), route_resolver)
