try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

from datetime import datetime, timezone
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from app.core.errors import (
    AuthorizationDenied,
    NotConnected,
    ProviderAPIError,
    RefreshFailed,
    SyncInProgress,
)
from app.main import app
from app.models.instagram import Credential, MediaItem, MediaType
from app.services.instagram_connect import AuthorizationResult
from app.services.instagram_sync import SyncResult, SyncStatus

SYNCED_AT = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _items(count: int) -> list[MediaItem]:
    return [
        MediaItem(
            id=str(i),
            media_type=MediaType.IMAGE,
            media_url=f"https://cdn.example.com/{i}.jpg",
            permalink=f"https://instagram.com/p/{i}",
            timestamp=SYNCED_AT,
        )
        for i in range(count)
    ]


class StubConnectService:
    def __init__(self) -> None:
        self.result = AuthorizationResult(
            credential=Credential(provider_user_id="178414", username="studio", is_connected=True)
        )
        self.callbacks: list[dict] = []

    def authorization_url(self, **state_payload) -> str:
        return "https://www.instagram.com/oauth/authorize?client_id=app&state=abc"

    async def complete_authorization(self, **params) -> AuthorizationResult:
        self.callbacks.append(params)
        return self.result


class StubSyncService:
    def __init__(self) -> None:
        self.result = SyncResult(items=_items(10), cached=False, synced_at=SYNCED_AT)
        self.error: Exception | None = None
        self.cleared = 0

    async def sync(self) -> SyncResult:
        if self.error is not None:
            raise self.error
        return self.result

    async def feed(self) -> SyncResult:
        return SyncResult(items=_items(20), cached=True, synced_at=SYNCED_AT)

    def status(self) -> SyncStatus:
        return SyncStatus(
            is_connected=True,
            username="studio",
            last_sync=SYNCED_AT,
            token_expires_at=SYNCED_AT,
            token_expired=False,
        )

    async def clear_cache(self) -> bool:
        self.cleared += 1
        return True


pytestmark = pytest.mark.anyio("asyncio")


@pytest.fixture()
def services(app_settings):
    from app import dependencies

    connect_service = StubConnectService()
    sync_service = StubSyncService()

    app.dependency_overrides.clear()
    app.dependency_overrides.update(
        {
            dependencies.get_instagram_connect_service: lambda: connect_service,
            dependencies.get_instagram_sync_service: lambda: sync_service,
            dependencies.get_app_settings: lambda: app_settings,
        }
    )

    yield connect_service, sync_service

    app.dependency_overrides.clear()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


async def test_healthcheck() -> None:
    async with _client() as client:
        response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_authorize_returns_json_by_default(services) -> None:
    async with _client() as client:
        response = await client.get("/api/instagram/authorize")

    assert response.status_code == 200
    assert response.json()["authorization_url"].startswith("https://www.instagram.com/")


async def test_authorize_redirects_for_html_accept(services) -> None:
    async with _client() as client:
        response = await client.get(
            "/api/instagram/authorize", headers={"accept": "text/html"}
        )

    assert response.status_code == 307
    assert response.headers["location"].startswith("https://www.instagram.com/oauth/authorize")


async def test_callback_success_redirects_to_admin_and_clears_cache(services) -> None:
    connect_service, sync_service = services

    async with _client() as client:
        response = await client.get(
            "/api/instagram/callback", params={"code": "auth-code", "state": "abc"}
        )

    assert response.status_code == 303
    assert response.headers["location"] == (
        "https://site.example.com/admin/instagram?success=connected"
    )
    assert connect_service.callbacks[-1]["code"] == "auth-code"
    assert connect_service.callbacks[-1]["state"] == "abc"
    assert sync_service.cleared == 1


async def test_callback_failure_redirects_with_error_message(services) -> None:
    connect_service, sync_service = services
    connect_service.result = AuthorizationResult(
        error=AuthorizationDenied("The user denied your request.")
    )

    async with _client() as client:
        response = await client.get(
            "/api/instagram/callback",
            params={
                "error": "access_denied",
                "error_reason": "user_denied",
                "error_description": "The user denied your request.",
            },
        )

    assert response.status_code == 303
    location = urlparse(response.headers["location"])
    assert location.path == "/admin/instagram"
    assert parse_qs(location.query) == {"error": ["The user denied your request."]}
    assert connect_service.callbacks[-1]["error_reason"] == "user_denied"
    assert sync_service.cleared == 0


async def test_sync_returns_count_and_six_post_preview(services) -> None:
    async with _client() as client:
        response = await client.post("/api/instagram/sync")

    assert response.status_code == 200
    data = response.json()
    assert data["count"] == 10
    assert len(data["posts"]) == 6
    assert data["cached"] is False
    assert data["has_more"] is False


@pytest.mark.parametrize(
    ("error", "status_code", "reason"),
    [
        (NotConnected("Instagram not connected"), 409, "not_connected"),
        (RefreshFailed("Access token expired and refresh failed."), 401, "refresh_failed"),
        (ProviderAPIError("Media listing failed.", status_code=500), 502, "provider_api_error"),
        (SyncInProgress("still running"), 503, "sync_in_progress"),
    ],
)
async def test_sync_errors_map_to_http_status(services, error, status_code, reason) -> None:
    _, sync_service = services
    sync_service.error = error

    async with _client() as client:
        response = await client.post("/api/instagram/sync")

    assert response.status_code == status_code
    detail = response.json()["detail"]
    assert detail["reason"] == reason
    assert detail["message"] == error.message


async def test_sync_status(services) -> None:
    async with _client() as client:
        response = await client.get("/api/instagram/sync")

    assert response.status_code == 200
    data = response.json()
    assert data["is_connected"] is True
    assert data["username"] == "studio"
    assert data["token_expired"] is False
    assert "access_token" not in data


async def test_delete_clears_cache(services) -> None:
    _, sync_service = services

    async with _client() as client:
        response = await client.delete("/api/instagram/sync")

    assert response.status_code == 200
    assert response.json()["cleared"] is True
    assert sync_service.cleared == 1


async def test_public_feed_respects_limit(services) -> None:
    async with _client() as client:
        default = await client.get("/api/instagram/posts")
        limited = await client.get("/api/instagram/posts", params={"limit": 3})

    assert len(default.json()["posts"]) == 12
    assert default.json()["cached"] is True
    assert [post["id"] for post in limited.json()["posts"]] == ["0", "1", "2"]
