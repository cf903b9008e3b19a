from __future__ import annotations

import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from libmedium.main import libmedium_error_handler
from libmedium.services.asset_proxy import AssetNotFoundError
from tests.fakes import (
    FIXTURE_CANONICAL_PATH,
    FIXTURE_FRAGMENT,
    FIXTURE_GIST_URL,
    FIXTURE_POST_ID,
    FakeGistProvider,
    FakeMediumClient,
)


def test_health_and_index(client: TestClient) -> None:
    health = client.get("/health")
    assert health.status_code == 200
    assert health.json() == {"status": "ok"}

    index = client.get("/")
    assert index.status_code == 200
    assert index.headers["content-type"].startswith("text/html")
    assert "libmedium" in index.text


def test_by_post_id_redirects_to_canonical_page(
    client: TestClient,
    fake_medium: FakeMediumClient,
) -> None:
    response = client.get(f"/utils/post/{FIXTURE_POST_ID}", follow_redirects=False)

    assert response.status_code == 301
    assert response.headers["location"] == FIXTURE_CANONICAL_PATH
    assert fake_medium.light_calls == [FIXTURE_POST_ID]
    assert fake_medium.full_calls == []


@pytest.mark.parametrize(
    ("path", "expected_location"),
    [
        ("/big-data-small-effort-b62607a43a8c", "/@ftrain/big-data-small-effort-b62607a43a8c"),
        (
            "/p/9fab2921ace8",
            "/@shawn-shi/rest-api-best-practices-decouple-long-running-tasks-"
            "from-http-request-processing-9fab2921ace8",
        ),
    ],
)
def test_legacy_paths_redirect(client: TestClient, path: str, expected_location: str) -> None:
    response = client.get(path, follow_redirects=False)
    assert response.status_code == 301
    assert response.headers["location"] == expected_location


def test_canonical_page_renders_fixture_post(
    client: TestClient,
    fake_gists: FakeGistProvider,
) -> None:
    response = client.get(FIXTURE_CANONICAL_PATH)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    body = response.text
    assert FIXTURE_FRAGMENT in body
    assert "<title>Fear and Loathing in Lock-Free Programming</title>" in body
    assert "Jan 1, 2019" in body
    assert "7 min read" in body
    assert '<figure class="gist">' in body
    assert "fn main() {}" in body
    assert '<ul><li>pin the epoch</li>' in body
    assert fake_gists.calls == [FIXTURE_GIST_URL]


def test_redirect_then_render_round_trip(client: TestClient) -> None:
    response = client.get(f"/utils/post/{FIXTURE_POST_ID}")
    assert response.status_code == 200
    assert FIXTURE_FRAGMENT in response.text


def test_unknown_post_is_not_found_without_embed_fetches(
    client: TestClient,
    fake_gists: FakeGistProvider,
) -> None:
    page = client.get("/@nobody/missing-post-000000000000")
    assert page.status_code == 404
    assert "Post not found." in page.text
    assert fake_gists.calls == []

    redirect = client.get("/utils/post/000000000000", follow_redirects=False)
    assert redirect.status_code == 404


def test_path_without_usable_id_is_bad_request(client: TestClient) -> None:
    response = client.get("/@tylerneely/dangling-")
    assert response.status_code == 400
    assert "does not contain a post id" in response.text


def test_failed_embed_fails_whole_page(
    client: TestClient,
    fake_gists: FakeGistProvider,
) -> None:
    fake_gists.failing.add(FIXTURE_GIST_URL)

    response = client.get(FIXTURE_CANONICAL_PATH)

    assert response.status_code == 502
    assert FIXTURE_FRAGMENT not in response.text
    assert "status=500" not in response.text


def test_asset_proxy_sets_long_lived_cache_headers(client: TestClient) -> None:
    response = client.get("/asset/medium/1*LY2ohYsNa9nOV1Clko3zJA.png")

    assert response.status_code == 200
    assert response.headers["cache-control"] == "public, immutable, max-age=86400"
    assert response.headers["content-type"] == "image/png"
    assert response.content.startswith(b"\x89PNG")

    missing = client.get("/asset/medium/missing.png")
    assert missing.status_code == 404


def test_request_id_is_echoed(client: TestClient) -> None:
    response = client.get("/health", headers={"X-Request-ID": "req-42"})
    assert response.headers["X-Request-ID"] == "req-42"

    generated = client.get("/health")
    assert generated.headers["X-Request-ID"]


def test_file_like_and_reserved_paths_skip_upstream(
    client: TestClient,
    fake_medium: FakeMediumClient,
) -> None:
    favicon = client.get("/favicon.ico", follow_redirects=False)
    assert favicon.status_code == 404

    robots = client.get("/robots.txt", follow_redirects=False)
    assert robots.status_code == 400

    bare_utils = client.get("/utils/post", follow_redirects=False)
    assert bare_utils.status_code == 400
    assert "does not contain a post id" in bare_utils.text

    assert fake_medium.light_calls == []
    assert fake_medium.full_calls == []


@pytest.mark.asyncio
async def test_error_handler_renders_mapped_status_without_internals() -> None:
    request = Request(
        {
            "type": "http",
            "method": "GET",
            "scheme": "http",
            "server": ("testserver", 80),
            "path": "/asset/medium/gone.png",
            "root_path": "",
            "query_string": b"",
            "headers": [],
        }
    )
    exc = AssetNotFoundError("asset not found name=gone.png", upstream_status=404)

    response = await libmedium_error_handler(request, exc)

    assert response.status_code == 404
    body = bytes(response.body).decode("utf-8")
    assert "Asset not found." in body
    assert "name=gone.png" not in body
