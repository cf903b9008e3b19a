from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from libmedium.dependencies import (
    get_asset_proxy,
    get_post_assembler,
    get_route_resolver,
    reset_cached_dependencies,
)
from libmedium.main import create_app
from libmedium.services.asset_proxy import AssetProxy
from libmedium.services.embed_resolver import EmbedResolver
from libmedium.services.post_assembler import PostAssembler
from libmedium.services.route_resolver import RouteResolver
from tests.fakes import FakeGistProvider, FakeMediumClient, fixture_post_payload, post_payload

ASSET_BYTES = b"\x89PNG\r\n\x1a\nfake"


def _asset_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("missing.png"):
        return httpx.Response(404)
    return httpx.Response(200, content=ASSET_BYTES, headers={"content-type": "image/png"})


@pytest.fixture(autouse=True)
def _runtime_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:  # pyright: ignore[reportUnusedFunction]
    monkeypatch.setenv("LIBMEDIUM_DATA_DIR", str(tmp_path / "runtime-data"))
    monkeypatch.setenv("LIBMEDIUM_TELEMETRY_ENABLED", "0")
    for name in ("LIBMEDIUM_LOG_DIR", "LIBMEDIUM_REQUIRE_PREVIEW_IMAGE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_medium() -> FakeMediumClient:
    medium = FakeMediumClient()
    medium.add(fixture_post_payload())
    medium.add(
        post_payload(
            post_id="b62607a43a8c",
            username="ftrain",
            slug="big-data-small-effort-b62607a43a8c",
        )
    )
    medium.add(
        post_payload(
            post_id="9fab2921ace8",
            username="shawn-shi",
            slug=(
                "rest-api-best-practices-decouple-long-running-tasks-"
                "from-http-request-processing-9fab2921ace8"
            ),
        )
    )
    return medium


@pytest.fixture
def fake_gists() -> FakeGistProvider:
    return FakeGistProvider()


@pytest.fixture
def client(fake_medium: FakeMediumClient, fake_gists: FakeGistProvider) -> Iterator[TestClient]:
    reset_cached_dependencies()
    app = create_app()
    app.dependency_overrides[get_route_resolver] = lambda: RouteResolver(
        content_client=fake_medium
    )
    app.dependency_overrides[get_post_assembler] = lambda: PostAssembler(
        content_client=fake_medium,
        embed_resolver=EmbedResolver(providers=[fake_gists]),
    )
    app.dependency_overrides[get_asset_proxy] = lambda: AssetProxy(
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(_asset_handler)),
        asset_base_url="https://miro.medium.com",
        cache_max_age_seconds=60 * 60 * 24,
    )
    with TestClient(app) as test_client:
        yield test_client

    reset_cached_dependencies()
