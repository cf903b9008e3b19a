from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from libmedium.errors import PostNotFoundError, UpstreamTransportError
from libmedium.models.post import Post, PostLight
from libmedium.telemetry import TelemetryClient

LOGGER = logging.getLogger("libmedium.medium")

ModelT = TypeVar("ModelT", bound=BaseModel)

POST_DATA_QUERY = """
query PostData($id: ID!) {
  post(id: $id) {
    id
    title
    createdAt
    readingTime
    uniqueSlug
    creator { id name username imageId }
    previewImage { id }
    previewContent { subtitle }
    content {
      bodyModel {
        paragraphs {
          name
          type
          text
          markups { type start end href anchorType userId }
          iframe { mediaResource { href iframeSrc iframeWidth iframeHeight } }
          metadata { id originalWidth originalHeight alt }
          mixtapeMetadata { href }
          codeBlockMetadata { lang }
        }
      }
    }
  }
}
""".strip()

POST_LIGHT_QUERY = """
query PostLight($id: ID!) {
  post(id: $id) {
    uniqueSlug
    creator { username }
  }
}
""".strip()


class MediumClient:
    """Content API client for Medium's internal GraphQL endpoint."""

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        graphql_url: str,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._http_client = http_client
        self._graphql_url = graphql_url
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()

    async def get_full_post(self, post_id: str) -> Post:
        payload = await self._query_post(
            post_id,
            operation_name="PostData",
            query=POST_DATA_QUERY,
        )
        return _parse_post(Post, payload, post_id=post_id)

    async def get_light_post(self, post_id: str) -> PostLight:
        payload = await self._query_post(
            post_id,
            operation_name="PostLight",
            query=POST_LIGHT_QUERY,
        )
        return _parse_post(PostLight, payload, post_id=post_id)

    async def _query_post(
        self,
        post_id: str,
        *,
        operation_name: str,
        query: str,
    ) -> dict[str, Any]:
        request_body = {
            "operationName": operation_name,
            "query": query,
            "variables": {"id": post_id},
        }
        with self._telemetry.timed(
            "upstream.post.fetch",
            operation=operation_name,
            post_id=post_id,
        ) as event:
            try:
                response = await self._http_client.post(self._graphql_url, json=request_body)
            except httpx.HTTPError as exc:
                LOGGER.warning(
                    "medium graphql request failed operation=%s post_id=%s error=%s",
                    operation_name,
                    post_id,
                    type(exc).__name__,
                )
                raise UpstreamTransportError(f"medium request failed: {exc}") from exc

            event.set(status_code=response.status_code)
            if response.status_code == 404:
                raise PostNotFoundError(post_id)
            if not response.is_success:
                raise UpstreamTransportError(
                    f"medium responded with status={response.status_code}",
                    upstream_status=response.status_code,
                )

            try:
                document = response.json()
            except ValueError as exc:
                raise UpstreamTransportError("medium returned a non-JSON body") from exc

            post = _extract_post(document)
            if post is None:
                raise PostNotFoundError(post_id)
            return post


def _extract_post(document: Any) -> dict[str, Any] | None:
    if not isinstance(document, dict):
        raise UpstreamTransportError("medium returned an unexpected payload shape")
    data = document.get("data")
    if not isinstance(data, dict):
        errors = document.get("errors")
        raise UpstreamTransportError(f"medium graphql returned no data errors={errors!r}")
    post = data.get("post")
    if post is None:
        return None
    if not isinstance(post, dict):
        raise UpstreamTransportError("medium returned an unexpected post shape")
    return post


def _parse_post(
    model: type[ModelT],
    payload: dict[str, Any],
    *,
    post_id: str,
) -> ModelT:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        LOGGER.warning(
            "medium post payload failed validation post_id=%s errors=%s",
            post_id,
            exc.error_count(),
        )
        raise UpstreamTransportError(f"malformed post payload for post_id={post_id}") from exc
