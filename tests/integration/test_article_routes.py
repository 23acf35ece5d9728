"""Integration tests for the /file-articles endpoints."""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from edu_cms.app.api.routes import articles as articles_routes
from edu_cms.app.config import Settings
from edu_cms.app.main import create_app

OTHER_TEACHER = {"Authorization": "Bearer bob:TEACHER"}
STUDENT = {"Authorization": "Bearer sam:STUDENT"}
ADMIN = {"Authorization": "Bearer root:ADMIN"}


def _create(client: TestClient, **overrides: object) -> dict:
    payload: dict[str, object] = {
        "title": "Intro to Python",
        "body": "<h1>Intro</h1><p>Hello world</p>",
    }
    payload.update(overrides)
    response = client.post("/file-articles", json=payload)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def test_create_article(client: TestClient) -> None:
    """Test POST creates version 1 with a generated slug."""
    data = _create(client, excerpt="Short", tags=["python"])

    assert data["slug"].startswith("intro-to-python-")
    assert data["author_id"] == "teacher-1"
    assert data["status"] == "draft"
    assert data["metadata"]["version"] == 1
    assert data["metadata"]["word_count"] == 3
    assert [e["path"] for e in data["structure"]] == ["/heading-1/intro", "/paragraph/0"]


def test_create_published_article_sets_status(client: TestClient) -> None:
    """Test published flag drives the initial status."""
    data = _create(client, published=True)

    assert data["published"] is True
    assert data["status"] == "published"


def test_create_rejects_dangerous_body(client: TestClient) -> None:
    """Test content validation errors map to 400."""
    response = client.post(
        "/file-articles",
        json={"title": "XSS", "body": '<a href="javascript:alert(1)">x</a>'},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["errorCode"] == "VALIDATION_ERROR"


def test_create_rejects_malformed_request(client: TestClient) -> None:
    """Test schema errors use the same envelope."""
    response = client.post("/file-articles", json={"body": "<p>No title</p>"})

    assert response.status_code == 400
    assert response.json()["errorCode"] == "VALIDATION_ERROR"


def test_student_cannot_create(client: TestClient) -> None:
    """Test writes require TEACHER or ADMIN."""
    response = client.post(
        "/file-articles", json={"title": "x", "body": "<p>x</p>"}, headers=STUDENT
    )

    assert response.status_code == 403
    assert response.json()["errorCode"] == "FORBIDDEN"


def test_create_conflict(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test an existing generated slug returns 409."""
    monkeypatch.setattr(articles_routes, "generate_slug", lambda title: "fixed-slug")

    _create(client)
    response = client.post("/file-articles", json={"title": "Again", "body": "<p>x</p>"})

    assert response.status_code == 409
    assert response.json()["errorCode"] == "CONFLICT"


def test_get_article_and_paths(client: TestClient) -> None:
    """Test reads by slug."""
    slug = _create(client)["slug"]

    article = client.get(f"/file-articles/{slug}")
    paths = client.get(f"/file-articles/{slug}/paths")

    assert article.status_code == 200
    assert article.json()["data"]["slug"] == slug
    assert paths.status_code == 200
    assert [e["path"] for e in paths.json()["data"]] == ["/heading-1/intro", "/paragraph/0"]


def test_get_unknown_and_invalid_slug(client: TestClient) -> None:
    """Test 404 for unknown and 400 for malformed slugs."""
    assert client.get("/file-articles/missing").status_code == 404
    assert client.get("/file-articles/Bad_Slug").status_code == 400


def test_unpublished_article_hidden_from_others(client: TestClient) -> None:
    """Test drafts are invisible to non-owners but visible to admins."""
    slug = _create(client)["slug"]

    assert client.get(f"/file-articles/{slug}", headers=STUDENT).status_code == 404
    assert client.get(f"/file-articles/{slug}", headers=OTHER_TEACHER).status_code == 404
    assert client.get(f"/file-articles/{slug}", headers=ADMIN).status_code == 200


def test_list_filters_and_student_visibility(client: TestClient) -> None:
    """Test listing, pagination block and student filtering."""
    _create(client, title="Draft one")
    published = _create(client, title="Published one", published=True, category="python")

    teacher_view = client.get("/file-articles", params={"limit": 1})
    student_view = client.get("/file-articles", params={"published": "false"}, headers=STUDENT)
    by_category = client.get("/file-articles", params={"category": "python"})

    assert teacher_view.status_code == 200
    assert len(teacher_view.json()["data"]) == 1
    assert teacher_view.json()["pagination"] == {
        "page": 1,
        "limit": 1,
        "total": 2,
        "total_pages": 2,
    }
    assert [a["slug"] for a in student_view.json()["data"]] == [published["slug"]]
    assert [a["slug"] for a in by_category.json()["data"]] == [published["slug"]]


def test_list_rejects_bad_pagination(client: TestClient) -> None:
    """Test query validation."""
    assert client.get("/file-articles", params={"page": 0}).status_code == 400
    assert client.get("/file-articles", params={"limit": 101}).status_code == 400


def test_update_by_owner(client: TestClient) -> None:
    """Test PUT merges fields and bumps the version."""
    slug = _create(client)["slug"]

    response = client.put(
        f"/file-articles/{slug}", json={"title": "Python 101", "body": "<h2>New</h2><p>a b</p>"}
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["title"] == "Python 101"
    assert data["metadata"]["version"] == 2
    assert [e["path"] for e in data["structure"]] == ["/heading-2/new", "/paragraph/0"]


def test_update_by_non_owner_is_forbidden(client: TestClient) -> None:
    """Test ownership enforcement, with the admin override."""
    slug = _create(client)["slug"]

    denied = client.put(f"/file-articles/{slug}", json={"title": "Hijack"}, headers=OTHER_TEACHER)
    allowed = client.put(f"/file-articles/{slug}", json={"title": "Admin edit"}, headers=ADMIN)

    assert denied.status_code == 403
    assert denied.json()["errorCode"] == "FORBIDDEN"
    assert allowed.status_code == 200


def test_update_rejects_tags_in_title(client: TestClient) -> None:
    """Test title validation on title-only updates."""
    slug = _create(client)["slug"]

    response = client.put(f"/file-articles/{slug}", json={"title": "<b>bold</b>"})

    assert response.status_code == 400


def test_update_missing_article(client: TestClient) -> None:
    """Test PUT on an unknown slug."""
    response = client.put("/file-articles/missing", json={"title": "x"})

    assert response.status_code == 404


def test_history_and_restore(client: TestClient) -> None:
    """Test the version history endpoints."""
    slug = _create(client, title="Original")["slug"]
    client.put(f"/file-articles/{slug}", json={"title": "Second"})

    history = client.get(f"/file-articles/{slug}/history")
    restored = client.post(f"/file-articles/{slug}/restore/1")
    missing = client.post(f"/file-articles/{slug}/restore/9")
    bad = client.post(f"/file-articles/{slug}/restore/abc")

    assert [s["version"] for s in history.json()["data"]] == [2, 1]
    assert restored.status_code == 200
    assert restored.json()["data"]["title"] == "Original"
    assert restored.json()["data"]["metadata"]["version"] == 3
    assert missing.status_code == 404
    assert bad.status_code == 400


def test_history_requires_ownership(client: TestClient) -> None:
    """Test other teachers cannot read history."""
    slug = _create(client)["slug"]

    assert client.get(f"/file-articles/{slug}/history", headers=OTHER_TEACHER).status_code == 403
    assert client.get(f"/file-articles/{slug}/history", headers=STUDENT).status_code == 403


def test_delete(client: TestClient) -> None:
    """Test DELETE removes the article."""
    slug = _create(client)["slug"]

    denied = client.delete(f"/file-articles/{slug}", headers=OTHER_TEACHER)
    deleted = client.delete(f"/file-articles/{slug}")

    assert denied.status_code == 403
    assert deleted.status_code == 200
    assert deleted.json() == {"success": True, "data": None}
    assert client.get(f"/file-articles/{slug}").status_code == 404
    assert client.delete(f"/file-articles/{slug}").status_code == 404


def test_write_rate_limit_returns_429(tmp_path: Path) -> None:
    """Test the per-user write limit."""
    settings = Settings(
        articles_dir=str(tmp_path / "articles"),
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'index.db'}",
        redis_url=None,
        write_rate_limit=2,
    )

    with TestClient(create_app(settings)) as client:
        slug = _create(client)["slug"]
        client.put(f"/file-articles/{slug}", json={"title": "Second"})
        limited = client.put(f"/file-articles/{slug}", json={"title": "Third"})
        other_user = client.post(
            "/file-articles", json={"title": "Bob", "body": "<p>x</p>"}, headers=OTHER_TEACHER
        )

    assert limited.status_code == 429
    assert limited.json()["errorCode"] == "RATE_LIMIT_EXCEEDED"
    assert other_user.status_code == 201
