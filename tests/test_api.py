"""
HTTP-level tests for the v1 API
"""
import pytest

from mdpress.logging import metrics

API = "/api/v1"


async def register(client, email="writer@example.com", password="secret-pass"):
    response = await client.post(f"{API}/auth/register", json={"email": email, "password": password})
    assert response.status_code == 201
    return response.json()


def bearer(tokens):
    return {"Authorization": f"Bearer {tokens['access_token']}"}


async def publish(client, tokens, title="API Post", content="Hello **world** from the API", tags=("api",)):
    headers = bearer(tokens)
    created = await client.post(f"{API}/files/file", json={"name": "api"}, headers=headers)
    assert created.status_code == 201
    file_id = created.json()["id"]
    await client.put(f"{API}/files/file/{file_id}", json={"content": content}, headers=headers)
    response = await client.post(f"{API}/blogs/publish", json={
        "source_document_id": file_id,
        "title": title,
        "tags": list(tags),
    }, headers=headers)
    assert response.status_code == 201
    return response.json()


async def test_register_login_and_refresh(client):
    tokens = await register(client)
    assert tokens["token_type"] == "bearer"
    assert tokens["user"]["email"] == "writer@example.com"

    response = await client.post(f"{API}/auth/login", json={
        "email": "writer@example.com", "password": "secret-pass",
    })
    assert response.status_code == 200

    response = await client.post(f"{API}/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 200
    assert response.json()["refresh_token"] != tokens["refresh_token"]

    response = await client.post(f"{API}/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 401


async def test_duplicate_registration_conflicts(client):
    await register(client)
    response = await client.post(f"{API}/auth/register", json={
        "email": "writer@example.com", "password": "secret-pass",
    })
    assert response.status_code == 409
    assert response.json()["error"] == "CONFLICT"


async def test_unauthenticated_request_envelope(client):
    response = await client.get(f"{API}/files")
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "UNAUTHORIZED"
    assert body["request_id"] == response.headers["X-Request-ID"]


async def test_invalid_token_rejected_even_on_public_routes(client):
    response = await client.get(f"{API}/blogs/search", params={"q": "x"},
                                headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401


async def test_validation_errors_are_invalid_input(client):
    tokens = await register(client)
    response = await client.post(f"{API}/blogs/publish", json={"title": "No document"},
                                 headers=bearer(tokens))
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "INVALID_INPUT"
    assert body["details"]["field"] == "source_document_id"


async def test_file_tree_crud(client):
    headers = bearer(await register(client))

    tree = (await client.get(f"{API}/files", headers=headers)).json()
    assert [folder["name"] for folder in tree["folders"]] == ["My Documents"]
    root_id = tree["folders"][0]["id"]

    folder = (await client.post(f"{API}/files/folder", json={"name": "Drafts", "parent_id": root_id},
                                headers=headers)).json()
    created = await client.post(f"{API}/files/file", json={"name": "idea", "parent_id": folder["id"]},
                                headers=headers)
    assert created.json()["name"] == "idea.md"
    file_id = created.json()["id"]

    updated = await client.put(f"{API}/files/file/{file_id}", json={"content": "# Idea"}, headers=headers)
    assert updated.json()["content"] == "# Idea"
    assert updated.json()["parent_id"] == folder["id"]

    preview = (await client.get(f"{API}/files/file/{file_id}/preview", headers=headers)).json()
    assert "<h1" in preview["html"]

    response = await client.put(f"{API}/files/folder/{root_id}", json={"parent_id": folder["id"]},
                                headers=headers)
    assert response.status_code == 400

    response = await client.delete(f"{API}/files/folder/{folder['id']}", headers=headers)
    assert response.status_code == 200
    response = await client.get(f"{API}/files/file/{file_id}", headers=headers)
    assert response.status_code == 404
    assert response.json()["error"] == "NOT_FOUND"


async def test_publish_and_read_publicly(client):
    tokens = await register(client)
    post = await publish(client, tokens)
    assert post["slug"] == "api-post"
    assert post["status"] == "published"
    assert post["tags"] == ["api"]

    listing = (await client.get(f"{API}/blogs/public")).json()
    assert listing["total"] == 1
    assert listing["items"][0]["document_name"] == "api.md"
    assert "content" not in listing["items"][0]

    public = await client.get(f"{API}/blogs/public/api-post")
    assert public.status_code == 200
    assert public.json()["views"] == 1
    assert public.json()["content"].startswith("Hello")
    assert public.headers["Cache-Control"] == "no-store"

    assert (await client.get(f"{API}/blogs/public/Bad_Slug")).status_code == 400
    assert (await client.get(f"{API}/blogs/public/missing")).status_code == 404


async def test_own_posts_update_and_delete(client):
    tokens = await register(client)
    headers = bearer(tokens)
    post = await publish(client, tokens)

    response = await client.put(f"{API}/blogs/{post['id']}", json={"status": "draft"}, headers=headers)
    assert response.json()["status"] == "draft"
    assert (await client.get(f"{API}/blogs/public/api-post")).status_code == 404

    own = (await client.get(f"{API}/blogs", params={"status": "draft"}, headers=headers)).json()
    assert [item["id"] for item in own["items"]] == [post["id"]]

    other = bearer(await register(client, "other@example.com"))
    assert (await client.get(f"{API}/blogs/{post['id']}", headers=other)).status_code == 404

    assert (await client.delete(f"{API}/blogs/{post['id']}", headers=headers)).status_code == 200
    assert (await client.get(f"{API}/blogs/{post['id']}", headers=headers)).status_code == 404


async def test_search_response_shape(client):
    tokens = await register(client)
    await publish(client, tokens, title="Searchable Title", tags=("python",))

    response = await client.get(f"{API}/blogs/search", params={"q": "searchable", "page_size": 500})
    assert response.status_code == 200
    body = response.json()
    assert body["total_count"] == 1
    assert body["page_size"] == 50
    assert body["query"] == "searchable"
    assert body["suggestions"] == ["python"]
    assert body["has_more"] is False
    assert body["results"][0]["score"] == 10
    assert body["results"][0]["matched_fields"] == ["title"]

    response = await client.get(f"{API}/blogs/search", params={"q": "   "})
    assert response.status_code == 400
    assert response.json()["details"]["field"] == "q"


async def test_track_and_like_status(client):
    tokens = await register(client)
    post = await publish(client, tokens)
    url = f"{API}/blogs/public/{post['id']}"

    response = await client.post(f"{url}/track", json={"type": "like"})
    assert response.status_code == 401

    liked = (await client.post(f"{url}/track", json={"type": "like"}, headers=bearer(tokens))).json()
    assert liked["is_liked"] is True and liked["likes"] == 1

    shared = (await client.post(f"{url}/track", json={"type": "share"})).json()
    assert shared["shares"] == 1

    status = (await client.get(f"{url}/like-status", headers=bearer(tokens))).json()
    assert status == {"is_liked": True, "total_likes": 1}
    status = (await client.get(f"{url}/like-status")).json()
    assert status == {"is_liked": False, "total_likes": 1}

    response = await client.post(f"{url}/track", json={"type": "bookmark"})
    assert response.status_code == 400


async def test_analytics_routes(client):
    tokens = await register(client)
    headers = bearer(tokens)
    post = await publish(client, tokens)
    await client.post(f"{API}/blogs/public/{post['id']}/track", json={"type": "view"})

    report = (await client.get(f"{API}/blogs/{post['id']}/analytics", headers=headers)).json()
    assert report["totals"]["views"] == 1
    assert report["period"]["days"] == 30
    assert len(report["analytics"]) == 1

    board = (await client.get(f"{API}/blogs/dashboard", headers=headers)).json()
    assert board["post_count"] == 1
    assert board["published_count"] == 1
    assert board["top_posts"][0]["id"] == post["id"]


@pytest.mark.parametrize("path", [f"{API}/health", f"{API}/metrics", "/api"])
async def test_operational_endpoints(client, path):
    response = await client.get(path)
    assert response.status_code == 200
    assert "X-Response-Time" in response.headers


async def test_health_reports_database(client):
    body = (await client.get(f"{API}/health")).json()
    assert body["status"] == "healthy"
    assert body["checks"] == {"database": "ok"}


async def test_unknown_route_uses_error_envelope(client):
    response = await client.get(f"{API}/nowhere")
    assert response.status_code == 404
    assert response.json()["error"] == "NOT_FOUND"


async def test_request_counters_use_route_templates(client):
    for i in range(20):
        await client.get(f"{API}/blogs/public/no-such-post-{i}")
    await client.get(f"{API}/nowhere")

    by_slug = "http_requests_total{method=GET,route=/api/v1/blogs/public/{slug}}"
    unmatched = "http_requests_total{method=GET,route=unmatched}"
    keys = sorted(key for key in metrics.counters if key.startswith("http_requests_total"))
    assert keys == [by_slug, unmatched]
    assert metrics.counters[by_slug] == 20
    assert metrics.counters[unmatched] == 1
