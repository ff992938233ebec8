from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

from app.core.config import settings
from app.core.exceptions import StoreError
from app.core.security import create_session_token


def create(client, headers, url="https://example.com", title="Example"):
    return client.post("/api/bookmarks", json={"url": url, "title": title}, headers=headers)


class TestAuthentication:
    def test_list_requires_auth(self, client):
        response = client.get("/api/bookmarks")
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_create_and_delete_require_auth(self, client):
        assert client.post("/api/bookmarks", json={"url": "https://e.com", "title": "E"}).status_code == 401
        assert client.delete("/api/bookmarks/some-id").status_code == 401

    def test_malformed_authorization_header(self, client):
        for value in ("Bearer", "Bearer ", "Basic abc", "token"):
            response = client.get("/api/bookmarks", headers={"Authorization": value})
            assert response.status_code == 401
            assert response.json() == {"error": "Unauthorized"}

    def test_session_cookie_authenticates(self, client):
        client.cookies.set(settings.SESSION_COOKIE_NAME, create_session_token("carol"))
        response = create(client, {})
        assert response.status_code == 201
        assert response.json()["owner_id"] == "carol"


class TestCreateBookmark:
    def test_create_returns_record(self, client, auth_headers):
        response = create(client, auth_headers("user-u"))
        assert response.status_code == 201
        body = response.json()
        assert body["owner_id"] == "user-u"
        assert body["url"] == "https://example.com"
        assert body["title"] == "Example"
        assert body["id"]
        created_at = datetime.fromisoformat(body["created_at"])
        assert abs((datetime.now(timezone.utc) - created_at).total_seconds()) < 60

    def test_created_record_is_listed_first(self, client, auth_headers):
        headers = auth_headers("alice")
        create(client, headers, "https://one.example", "One")
        newest = create(client, headers, "https://two.example", "Two").json()
        listed = client.get("/api/bookmarks", headers=headers).json()
        assert listed[0] == newest
        assert len(listed) == 2

    def test_blank_title_rejected(self, client, auth_headers):
        headers = auth_headers("alice")
        response = create(client, headers, title="")
        assert response.status_code == 400
        assert response.json() == {"error": "URL and title are required"}
        assert client.get("/api/bookmarks", headers=headers).json() == []

    def test_missing_url_rejected(self, client, auth_headers):
        headers = auth_headers("alice")
        response = client.post("/api/bookmarks", json={"title": "Example"}, headers=headers)
        assert response.status_code == 400
        assert client.get("/api/bookmarks", headers=headers).json() == []

    def test_relative_url_rejected(self, client, auth_headers):
        response = create(client, auth_headers("alice"), url="/just/a/path")
        assert response.status_code == 400
        assert "URL" in response.json()["error"]

    def test_url_with_space_in_host_rejected(self, client, auth_headers):
        headers = auth_headers("alice")
        response = create(client, headers, url="http://exa mple.com")
        assert response.status_code == 400
        assert response.json() == {"error": "URL must be a valid http or https URL"}
        assert client.get("/api/bookmarks", headers=headers).json() == []

    def test_unparsable_body_rejected(self, client, auth_headers):
        headers = dict(auth_headers("alice"), **{"Content-Type": "application/json"})
        response = client.post("/api/bookmarks", content="{not json", headers=headers)
        assert response.status_code == 400

    def test_store_failure_is_generic_500(self, client, auth_headers):
        with patch("app.api.bookmarks.create_bookmark", AsyncMock(side_effect=StoreError("boom"))):
            response = create(client, auth_headers("alice"))
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to create bookmark"}


class TestListBookmarks:
    def test_empty_list(self, client, auth_headers):
        response = client.get("/api/bookmarks", headers=auth_headers("alice"))
        assert response.status_code == 200
        assert response.json() == []

    def test_owners_are_isolated(self, client, auth_headers):
        create(client, auth_headers("alice"), "https://a.example", "A")
        create(client, auth_headers("bob"), "https://b.example", "B")
        alice = client.get("/api/bookmarks", headers=auth_headers("alice")).json()
        assert [b["owner_id"] for b in alice] == ["alice"]

    def test_unexpected_error_does_not_leak(self, client, auth_headers):
        failing = AsyncMock(side_effect=RuntimeError("connection string postgres://secret"))
        with patch("app.api.bookmarks.list_bookmarks", failing):
            response = client.get("/api/bookmarks", headers=auth_headers("alice"))
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to fetch bookmarks"}
        assert "secret" not in response.text


class TestDeleteBookmark:
    def test_delete_is_idempotent(self, client, auth_headers):
        headers = auth_headers("alice")
        bookmark_id = create(client, headers).json()["id"]

        first = client.delete(f"/api/bookmarks/{bookmark_id}", headers=headers)
        assert first.status_code == 200
        assert first.json() == {"message": "Bookmark deleted successfully"}
        assert client.get("/api/bookmarks", headers=headers).json() == []

        second = client.delete(f"/api/bookmarks/{bookmark_id}", headers=headers)
        assert second.status_code == 200
        assert second.json() == first.json()

    def test_foreign_delete_looks_like_missing(self, client, auth_headers):
        bookmark_id = create(client, auth_headers("alice")).json()["id"]

        foreign = client.delete(f"/api/bookmarks/{bookmark_id}", headers=auth_headers("bob"))
        missing = client.delete("/api/bookmarks/no-such-id", headers=auth_headers("bob"))
        assert foreign.status_code == missing.status_code == 200
        assert foreign.json() == missing.json()

        remaining = client.get("/api/bookmarks", headers=auth_headers("alice")).json()
        assert [b["id"] for b in remaining] == [bookmark_id]

    def test_store_failure_is_500(self, client, auth_headers):
        with patch("app.api.bookmarks.delete_bookmark", AsyncMock(side_effect=StoreError("boom"))):
            response = client.delete("/api/bookmarks/abc", headers=auth_headers("alice"))
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to delete bookmark"}


def test_health_check(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
