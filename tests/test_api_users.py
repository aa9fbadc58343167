"""End-to-end tests for the protected /api/users routes."""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from accounts.api import create_app
from accounts.database import Database, DatabaseError
from accounts.tokens import TokenIssuer

SECRET = "users-test-signing-secret-0123456789abcdef"


@pytest.fixture
def api_app(tmp_path):
    database = Database(tmp_path / "accounts.sqlite3")
    issuer = TokenIssuer(SECRET)
    app = create_app(database=database, issuer=issuer)
    yield app, database, issuer


@pytest.fixture
def client(api_app):
    app, _, _ = api_app
    with TestClient(app) as test_client:
        yield test_client


def _register(client: TestClient, email: str, username: str, **names: str) -> tuple[dict, dict]:
    response = client.post(
        "/api/auth/register",
        json={"email": email, "username": username, "password": "secret1", **names},
    )
    assert response.status_code == 201, response.text
    payload = response.json()
    return payload["user"], {"Authorization": f"Bearer {payload['token']}"}


@pytest.mark.parametrize(
    "method, path",
    [
        ("GET", "/api/users"),
        ("GET", "/api/users/me"),
        ("GET", "/api/users/1"),
        ("PUT", "/api/users/1"),
        ("DELETE", "/api/users/1"),
    ],
)
def test_protected_routes_require_a_token(client, method: str, path: str) -> None:
    response = client.request(method, path)

    assert response.status_code == 401
    assert response.json() == {"error": "Missing bearer token"}


def test_invalid_token_is_rejected(client) -> None:
    response = client.get("/api/users/me", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid token"}


def test_non_bearer_scheme_is_rejected(client) -> None:
    response = client.get("/api/users/me", headers={"Authorization": "Basic dXNlcjpwYXNz"})

    assert response.status_code == 401


def test_expired_token_is_rejected(client) -> None:
    user, _ = _register(client, "old@example.com", "oldie")
    issued = datetime.now(timezone.utc) - timedelta(hours=25)
    stale = TokenIssuer(SECRET, clock=lambda: issued).issue(user["id"])

    response = client.get("/api/users/me", headers={"Authorization": f"Bearer {stale}"})

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid token"}


def test_read_current_user(client) -> None:
    user, headers = _register(client, "me@example.com", "myself", first_name="Ada")

    response = client.get("/api/users/me", headers=headers)

    assert response.status_code == 200
    assert response.json() == user
    assert "password_hash" not in response.json()


def test_list_users_newest_first(client) -> None:
    first, headers = _register(client, "first@example.com", "first")
    second, _ = _register(client, "second@example.com", "second")

    response = client.get("/api/users", headers=headers)

    assert response.status_code == 200
    ids = [item["id"] for item in response.json()]
    assert ids == [second["id"], first["id"]]
    assert all("password_hash" not in item for item in response.json())


def test_read_user_by_id(client) -> None:
    other, _ = _register(client, "other@example.com", "other")
    _, headers = _register(client, "viewer@example.com", "viewer")

    response = client.get(f"/api/users/{other['id']}", headers=headers)

    assert response.status_code == 200
    assert response.json()["username"] == "other"


def test_read_missing_user_is_not_found(client) -> None:
    _, headers = _register(client, "viewer@example.com", "viewer")

    response = client.get("/api/users/999999", headers=headers)

    assert response.status_code == 404
    assert response.json() == {"error": "User not found"}


def test_non_numeric_id_is_a_bad_request(client) -> None:
    _, headers = _register(client, "viewer@example.com", "viewer")

    response = client.get("/api/users/abc", headers=headers)

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid user ID"}


@pytest.mark.parametrize(
    "raw_id",
    ["99999999999999999999", "-9223372036854775809", " 5", "1_000", "\u0661", "0x10"],
)
def test_malformed_or_out_of_range_ids_are_bad_requests(client, raw_id: str) -> None:
    _, headers = _register(client, "viewer@example.com", "viewer")

    response = client.get(f"/api/users/{raw_id}", headers=headers)

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid user ID"}


def test_largest_signed_64_bit_id_is_looked_up(client) -> None:
    _, headers = _register(client, "viewer@example.com", "viewer")

    response = client.get("/api/users/9223372036854775807", headers=headers)

    assert response.status_code == 404
    assert response.json() == {"error": "User not found"}


def test_update_own_profile(client) -> None:
    user, headers = _register(client, "ada@example.com", "ada", first_name="Ada", last_name="Lovelace")

    response = client.put(
        f"/api/users/{user['id']}",
        headers=headers,
        json={"first_name": "", "last_name": "King"},
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["first_name"] == "Ada"
    assert body["last_name"] == "King"
    assert body["created_at"] == user["created_at"]
    assert datetime.fromisoformat(body["updated_at"]) > datetime.fromisoformat(user["updated_at"])


def test_update_with_null_clears_name(client) -> None:
    user, headers = _register(client, "ada@example.com", "ada", first_name="Ada", last_name="Lovelace")

    response = client.put(f"/api/users/{user['id']}", headers=headers, json={"last_name": None})

    assert response.status_code == 200
    assert response.json()["first_name"] == "Ada"
    assert "last_name" not in response.json()


def test_update_does_not_change_email_or_username(client) -> None:
    user, headers = _register(client, "ada@example.com", "ada")

    response = client.put(
        f"/api/users/{user['id']}",
        headers=headers,
        json={"email": "new@example.com", "username": "newname", "first_name": "Ada"},
    )

    assert response.status_code == 200
    assert response.json()["email"] == "ada@example.com"
    assert response.json()["username"] == "ada"


@pytest.mark.parametrize("body", [b'{"first_name": "Mallory"}', b"{not json"])
def test_update_of_another_user_is_forbidden(client, body: bytes) -> None:
    victim, _ = _register(client, "victim@example.com", "victim")
    _, headers = _register(client, "mallory@example.com", "mallory")

    response = client.put(
        f"/api/users/{victim['id']}",
        content=body,
        headers={**headers, "Content-Type": "application/json"},
    )

    assert response.status_code == 403
    assert response.json() == {"error": "You can only update your own profile"}


def test_update_with_malformed_body_is_a_bad_request(client) -> None:
    user, headers = _register(client, "ada@example.com", "ada")

    response = client.put(
        f"/api/users/{user['id']}",
        content=b"{not json",
        headers={**headers, "Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid request body"}


def test_delete_of_another_user_is_forbidden(client) -> None:
    victim, _ = _register(client, "victim@example.com", "victim")
    _, headers = _register(client, "mallory@example.com", "mallory")

    response = client.delete(f"/api/users/{victim['id']}", headers=headers)

    assert response.status_code == 403
    assert response.json() == {"error": "You can only delete your own account"}


def test_delete_then_read_is_not_found(client) -> None:
    user, headers = _register(client, "ada@example.com", "ada")

    deleted = client.delete(f"/api/users/{user['id']}", headers=headers)
    assert deleted.status_code == 200
    assert deleted.json() == {"message": "User deleted successfully"}

    # The token stays valid until it expires; the account is simply gone.
    response = client.get(f"/api/users/{user['id']}", headers=headers)
    assert response.status_code == 404
    assert response.json() == {"error": "User not found"}

    again = client.delete(f"/api/users/{user['id']}", headers=headers)
    assert again.status_code == 404

    me = client.get("/api/users/me", headers=headers)
    assert me.status_code == 404


def test_update_after_delete_is_not_found(client) -> None:
    user, headers = _register(client, "ada@example.com", "ada")
    client.delete(f"/api/users/{user['id']}", headers=headers)

    response = client.put(f"/api/users/{user['id']}", headers=headers, json={"first_name": "Ghost"})

    assert response.status_code == 404


def test_list_failure_is_reported_generically(api_app, monkeypatch) -> None:
    app, database, issuer = api_app
    headers = {"Authorization": f"Bearer {issuer.issue(1)}"}

    def broken_list():
        raise DatabaseError("database is locked")

    monkeypatch.setattr(database, "list_users", broken_list)

    with TestClient(app) as client:
        response = client.get("/api/users", headers=headers)

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to fetch users"}


def test_undecodable_user_row_is_reported_as_database_error(api_app) -> None:
    app, database, _ = api_app

    with TestClient(app) as client:
        _, headers = _register(client, "viewer@example.com", "viewer")
        with sqlite3.connect(database.path) as conn:
            bad_id = conn.execute(
                """
                INSERT INTO users (email, username, password_hash, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                ("bad@example.com", "bad", "x", "not-a-timestamp", "not-a-timestamp"),
            ).lastrowid
        response = client.get(f"/api/users/{bad_id}", headers=headers)

    assert response.status_code == 500
    assert response.json() == {"error": "Database error"}


def test_store_calls_run_off_the_event_loop(api_app, monkeypatch) -> None:
    app, database, _ = api_app
    on_loop = []
    original_get_user = database.get_user

    def recording_get_user(user_id: int):
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            on_loop.append(False)
        else:
            on_loop.append(True)
        return original_get_user(user_id)

    monkeypatch.setattr(database, "get_user", recording_get_user)

    with TestClient(app) as client:
        user, headers = _register(client, "viewer@example.com", "viewer")
        assert client.get("/api/users/me", headers=headers).status_code == 200
        assert client.get(f"/api/users/{user['id']}", headers=headers).status_code == 200

    assert on_loop == [False, False]


def test_cors_preflight_is_answered(client) -> None:
    response = client.options(
        "/api/users",
        headers={
            "Origin": "https://frontend.example",
            "Access-Control-Request-Method": "GET",
            "Access-Control-Request-Headers": "Authorization",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
