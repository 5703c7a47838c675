"""Tests for the FastAPI API endpoints."""

import pytest
from fastapi.testclient import TestClient

from appstax_live.api.app import create_app
from appstax_live.backend.memory import InMemoryBackend, relation


@pytest.fixture
def backend():
    """Backend seeded with a couple of posts and an author."""
    be = InMemoryBackend()
    be.save("authors", {"sysObjectId": "a1", "name": "Ada"})
    be.save("posts", {"sysObjectId": "p1", "title": "One", "sysCreated": "2020", "author": relation("authors", "a1")})
    be.save("posts", {"sysObjectId": "p2", "title": "Two", "sysCreated": "2021", "author": relation("authors", "a1")})
    return be


@pytest.fixture
def client(backend):
    """Create a test client with a fresh model."""
    app = create_app(backend=backend)
    return TestClient(app)


class TestWatchEndpoints:
    def test_put_watch_loads(self, client):
        """PUT returns the watch after its initial load."""
        response = client.put("/watches/posts", json={"expand": 1})
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "loaded"
        assert data["count"] == 2
        assert data["related_collections"] == ["authors"]

    def test_put_watch_rejects_negative_expand(self, client):
        """A negative expand is a validation error."""
        response = client.put("/watches/posts", json={"expand": -1})
        assert response.status_code == 422

    def test_list_and_get_watch(self, client):
        client.put("/watches/posts", json={})
        client.put("/watches/news", json={"collection": "posts", "filter": "title='One'"})

        response = client.get("/watches")
        assert response.status_code == 200
        assert sorted(w["name"] for w in response.json()) == ["news", "posts"]

        response = client.get("/watches/news")
        assert response.json()["count"] == 1

    def test_get_objects(self, client):
        """The live list comes back in order, rendered to the requested depth."""
        client.put("/watches/posts", json={"expand": 1})
        response = client.get("/watches/posts/objects", params={"depth": 1})
        assert response.status_code == 200
        posts = response.json()
        assert [p["sysObjectId"] for p in posts] == ["p2", "p1"]
        author = posts[0]["author"]["sysObjects"][0]
        assert author["name"] == "Ada"

    def test_delete_watch(self, client):
        client.put("/watches/posts", json={})
        assert client.delete("/watches/posts").status_code == 200
        assert client.delete("/watches/posts").status_code == 404
        assert client.get("/watches/posts/objects").status_code == 404

    def test_unknown_watch(self, client):
        """Unknown watches return 404."""
        assert client.get("/watches/nope").status_code == 404


class TestObjectEndpoints:
    def test_get_canonical_object(self, client):
        client.put("/watches/posts", json={"expand": 1})
        response = client.get("/objects/a1")
        assert response.status_code == 200
        data = response.json()
        assert data["collection"] == "authors"
        assert data["object"]["sysObjectId"] == "a1"
        assert data["object"]["name"] == "Ada"

    def test_get_unknown_object(self, client):
        assert client.get("/objects/zzz").status_code == 404

    def test_update_object(self, client):
        """Posting an object merges it into the canonical instance."""
        client.put("/watches/posts", json={"order": "title"})
        response = client.post("/objects/update", json={
            "collection": "posts",
            "object": {"sysObjectId": "p2", "title": "AAA"},
        })
        assert response.status_code == 200
        assert response.json()["object"]["title"] == "AAA"

        titles = [p["title"] for p in client.get("/watches/posts/objects").json()]
        assert titles == ["AAA", "One"]


class TestChannelEndpoints:
    def test_webhook_created_event(self, client):
        """A created webhook event lands in the watch."""
        client.put("/watches/posts", json={})
        response = client.post("/channels/posts/events", json={
            "type": "object.created",
            "object": {"sysObjectId": "p9", "title": "Nine", "sysCreated": "2099"},
        })
        assert response.status_code == 200
        assert response.json() == {"channel": "objects/posts", "delivered": 1}

        posts = client.get("/watches/posts/objects").json()
        assert posts[0]["sysObjectId"] == "p9"
        assert len(posts) == 3

    def test_webhook_relation_update(self, client):
        """An author update posted to the webhook reaches every post embedding it."""
        client.put("/watches/posts", json={"expand": 1})
        response = client.post("/channels/authors/events", json={
            "type": "object.updated",
            "object": {"sysObjectId": "a1", "name": "Ada Lovelace"},
        })
        assert response.json()["delivered"] == 1

        posts = client.get("/watches/posts/objects", params={"depth": 1}).json()
        assert all(p["author"]["sysObjects"][0]["name"] == "Ada Lovelace" for p in posts)

    def test_webhook_deleted_event(self, client):
        """A deleted webhook event removes the post."""
        client.put("/watches/posts", json={})
        client.post("/channels/posts/events", json={
            "type": "object.deleted",
            "object": {"sysObjectId": "p1"},
        })
        posts = client.get("/watches/posts/objects").json()
        assert [p["sysObjectId"] for p in posts] == ["p2"]

    def test_webhook_requires_identifier_for_updates(self, client):
        """Updates without an identifier are rejected with 422."""
        response = client.post("/channels/posts/events", json={
            "type": "object.updated",
            "object": {"title": "no id"},
        })
        assert response.status_code == 422

    def test_webhook_rejects_unknown_type(self, client):
        """Unknown event types are rejected."""
        response = client.post("/channels/posts/events", json={"type": "object.moved"})
        assert response.status_code == 422


class TestStatusAndConfig:
    def test_status(self, client):
        client.put("/watches/posts", json={"expand": 1})
        data = client.get("/status").json()
        assert data["watches"] == 1
        assert data["cached_objects"] == 3
        assert data["open_channels"] == 2
        assert data["config"]["channel_prefix"] == "objects/"

    def test_update_config(self, client):
        """Config can be replaced over HTTP."""
        response = client.put("/config", json={"max_cached_objects": 10})
        assert response.status_code == 200
        assert client.get("/config").json()["max_cached_objects"] == 10
