"""
Tests for the posts router.
"""

from unittest.mock import patch

from socialnet import config_store
from socialnet.content_moderation import ModerationResponse, ModerationResult
from socialnet.db_models import DBPost, DBReport


class TestCreatePost:

    def test_create_post(self, client, make_user, auth_headers):
        alice = make_user("alice")

        response = client.post("/posts", json={"content": "  Hello\r\nworld  "}, headers=auth_headers(alice))

        assert response.status_code == 201
        body = response.json()
        assert body["content"] == "Hello\nworld"
        assert body["status"] == "APPROVED"
        assert body["author"]["username"] == "alice"

    def test_requires_authentication(self, client):
        assert client.post("/posts", json={"content": "hi"}).status_code == 401

    def test_blank_content(self, client, make_user, auth_headers):
        alice = make_user("alice")
        response = client.post("/posts", json={"content": "   "}, headers=auth_headers(alice))
        assert response.status_code == 400

    def test_rejected_by_moderation(self, client, db_session, make_user, auth_headers):
        config_store.set_env_variable(db_session, "CONTENT_MODERATION_ENABLED", "true")
        alice = make_user("alice")
        verdict = ModerationResponse(result=ModerationResult.REJECTED, categories=["violence"], score=0.99)

        with patch("socialnet.social_service.moderate_content", return_value=verdict):
            response = client.post("/posts", json={"content": "awful"}, headers=auth_headers(alice))

        assert response.status_code == 400
        assert response.json()["detail"]["categories"] == ["violence"]
        assert db_session.query(DBPost).count() == 0


class TestFeed:

    def test_feed_shows_friends_posts(self, client, make_user, auth_headers):
        alice, bob = make_user("alice"), make_user("bob")
        client.post("/friends/bob", headers=auth_headers(alice))
        client.post("/posts", json={"content": "from bob"}, headers=auth_headers(bob))

        response = client.get("/posts", headers=auth_headers(alice))

        assert response.status_code == 200
        assert [p["content"] for p in response.json()] == ["from bob"]

    def test_limit_is_validated(self, client, make_user, auth_headers):
        alice = make_user("alice")
        assert client.get("/posts?limit=0", headers=auth_headers(alice)).status_code == 422

    def test_get_missing_post(self, client, make_user, auth_headers):
        alice = make_user("alice")
        assert client.get("/posts/999", headers=auth_headers(alice)).status_code == 404

    def test_insights(self, client, make_user, auth_headers):
        alice = make_user("alice")
        headers = auth_headers(alice)
        post_id = client.post("/posts", json={"content": "Hola a todos"}, headers=headers).json()["id"]

        with patch("socialnet.routers.posts.generate_content_summary", return_value="A greeting."), \
                patch("socialnet.routers.posts.detect_content_language", return_value="es"):
            response = client.get(f"/posts/{post_id}/insights", headers=headers)

        assert response.status_code == 200
        assert response.json() == {"post_id": post_id, "summary": "A greeting.", "language": "es"}

    def test_insights_fall_back_without_api_key(self, client, make_user, auth_headers, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        alice = make_user("alice")
        headers = auth_headers(alice)
        post_id = client.post("/posts", json={"content": "hello"}, headers=headers).json()["id"]

        body = client.get(f"/posts/{post_id}/insights", headers=headers).json()

        assert body["summary"] == "Summary unavailable"
        assert body["language"] == "en"

    def test_insights_missing_post(self, client, make_user, auth_headers):
        alice = make_user("alice")
        assert client.get("/posts/999/insights", headers=auth_headers(alice)).status_code == 404


class TestInteractions:

    def _post(self, client, headers):
        return client.post("/posts", json={"content": "likeable"}, headers=headers).json()["id"]

    def test_like_and_unlike(self, client, make_user, auth_headers):
        alice = make_user("alice")
        headers = auth_headers(alice)
        post_id = self._post(client, headers)

        liked = client.post(f"/posts/{post_id}/like", headers=headers)
        assert liked.json() == {"post_id": post_id, "likes_count": 1, "liked_by_me": True}

        unliked = client.delete(f"/posts/{post_id}/like", headers=headers)
        assert unliked.json() == {"post_id": post_id, "likes_count": 0, "liked_by_me": False}

    def test_like_missing_post(self, client, make_user, auth_headers):
        alice = make_user("alice")
        assert client.post("/posts/12345/like", headers=auth_headers(alice)).status_code == 404

    def test_comment(self, client, make_user, auth_headers):
        alice = make_user("alice")
        headers = auth_headers(alice)
        post_id = self._post(client, headers)

        response = client.post(f"/posts/{post_id}/comments", json={"content": "nice"}, headers=headers)

        assert response.status_code == 201
        assert response.json()["content"] == "nice"
        assert client.get(f"/posts/{post_id}", headers=headers).json()["comments_count"] == 1

    def test_report(self, client, db_session, make_user, auth_headers):
        alice, bob = make_user("alice"), make_user("bob")
        post_id = self._post(client, auth_headers(alice))

        response = client.post(f"/posts/{post_id}/report", json={"reason": "spam"}, headers=auth_headers(bob))

        assert response.status_code == 201
        assert response.json()["status"] == "PENDING"
        assert db_session.query(DBReport).filter_by(post_id=post_id).one().reporter_id == bob.id
