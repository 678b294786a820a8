"""
Tests for the authentication router: registration, login, /me.
"""

from socialnet import config_store
from socialnet.db_models import DBUser


class TestRegistration:

    def test_register_user(self, client, db_session):
        response = client.post("/users", json={"username": "alice", "password": "password123", "email": "a@example.com"})

        assert response.status_code == 201
        body = response.json()
        assert body["username"] == "alice"
        assert body["role"] == "USER"
        assert db_session.query(DBUser).filter_by(username="alice").one().email == "a@example.com"

    def test_duplicate_username(self, client):
        client.post("/users", json={"username": "alice", "password": "password123"})
        response = client.post("/users", json={"username": "alice", "password": "password456"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Username already exists"

    def test_duplicate_email(self, client):
        client.post("/users", json={"username": "alice", "password": "password123", "email": "same@example.com"})
        response = client.post("/users", json={"username": "alicia", "password": "password123", "email": "same@example.com"})

        assert response.status_code == 400

    def test_invalid_username(self, client):
        response = client.post("/users", json={"username": "bad name!", "password": "password123"})
        assert response.status_code == 400

    def test_short_password(self, client):
        response = client.post("/users", json={"username": "alice", "password": "short"})
        assert response.status_code == 422

    def test_registration_can_be_disabled_at_runtime(self, client, db_session):
        config_store.set_env_variable(db_session, "ENABLE_REGISTRATION", "false")

        response = client.post("/users", json={"username": "alice", "password": "password123"})

        assert response.status_code == 403
        assert db_session.query(DBUser).count() == 0


class TestLogin:

    def test_login_returns_token(self, client, make_user):
        make_user("alice")

        response = client.post("/token", json={"username": "alice", "password": "password123"})

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["access_token"]

    def test_wrong_password(self, client, make_user):
        make_user("alice")

        response = client.post("/token", json={"username": "alice", "password": "wrong-password"})

        assert response.status_code == 401

    def test_unknown_user(self, client):
        response = client.post("/token", json={"username": "nobody", "password": "password123"})
        assert response.status_code == 401


class TestMe:

    def test_me_returns_profile(self, client, make_user, auth_headers):
        alice = make_user("alice", bio="hi there")

        response = client.get("/me", headers=auth_headers(alice))

        assert response.status_code == 200
        body = response.json()
        assert body["username"] == "alice"
        assert body["bio"] == "hi there"
        assert body["role"] == "USER"

    def test_me_requires_token(self, client):
        assert client.get("/me").status_code == 401

    def test_invalid_token(self, client):
        response = client.get("/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_token_for_deleted_user(self, client, db_session, make_user, auth_headers):
        alice = make_user("alice")
        headers = auth_headers(alice)
        db_session.delete(alice)
        db_session.commit()

        assert client.get("/me", headers=headers).status_code == 401
