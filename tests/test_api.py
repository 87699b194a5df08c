from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from storefront.api import catalog, routes
from storefront.domain.account import Account
from storefront.domain.contracts import AuthConfig, LockoutConfig
from storefront.domain.errors import ConflictError
from storefront.domain.service import AuthService
from storefront.main import install_error_handlers
from storefront.security.tokens import TokenIssuer

SECRET = "test-secret-with-at-least-32-bytes!!"
PASSWORD = "Valid1!x"


class FakeAccountRepository:
    """In-memory repository mimicking the Postgres account table.

    Accounts are copied on the way in and out so unsaved changes never leak
    into the stored row.
    """

    def __init__(self) -> None:
        self._accounts: dict[str, Account] = {}
        self.saves = 0

    def create_account(self, *, email: str, password_hash: str, name: str) -> Account:
        if any(account.email == email for account in self._accounts.values()):
            raise ConflictError("User already exists.")
        now = datetime.now(timezone.utc)
        account = Account(
            id=str(uuid.uuid4()),
            email=email,
            password_hash=password_hash,
            name=name,
            created_at=now,
            updated_at=now,
        )
        self._accounts[account.id] = account
        return replace(account)

    def find_by_email(self, email: str) -> Account | None:
        for account in self._accounts.values():
            if account.email == email:
                return replace(account)
        return None

    def save_lockout_state(self, account: Account) -> Account:
        self.saves += 1
        stored = self._accounts[account.id]
        stored.failed_login_attempts = account.failed_login_attempts
        stored.lock_until = account.lock_until
        stored.updated_at = datetime.now(timezone.utc)
        return account

    def stored(self, email: str) -> Account:
        return next(account for account in self._accounts.values() if account.email == email)


class FakeDocumentRepository:
    """In-memory stand-in for a JSONB document collection."""

    def __init__(self, collection: str) -> None:
        self.collection = collection
        self._documents: dict[str, dict[str, Any]] = {}

    def create(self, data: dict[str, Any]) -> dict[str, Any]:
        now = datetime.now(timezone.utc).isoformat()
        document = {**data, "id": str(uuid.uuid4()), "createdAt": now, "updatedAt": now}
        self._documents[document["id"]] = document
        return dict(document)

    def list_all(self) -> list[dict[str, Any]]:
        return [dict(document) for document in self._documents.values()]

    def get(self, document_id: str) -> dict[str, Any] | None:
        document = self._documents.get(document_id)
        return dict(document) if document else None

    def update(self, document_id: str, data: dict[str, Any]) -> dict[str, Any] | None:
        document = self._documents.get(document_id)
        if document is None:
            return None
        document.update(data)
        document["updatedAt"] = datetime.now(timezone.utc).isoformat()
        return dict(document)

    def delete(self, document_id: str) -> bool:
        return self._documents.pop(document_id, None) is not None


class RacingAccountRepository(FakeAccountRepository):
    """Misses the duplicate on lookup, as when another signup commits in between."""

    def find_by_email(self, email: str) -> Account | None:
        return None


class BrokenDocumentRepository(FakeDocumentRepository):
    def list_all(self) -> list[dict[str, Any]]:
        raise RuntimeError("connection refused")


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def api_client(clock):
    """Provide a FastAPI test client with isolated state."""
    repository = FakeAccountRepository()
    service = AuthService(
        repository,
        TokenIssuer(SECRET),
        AuthConfig(bcrypt_rounds=4, lockout=LockoutConfig(max_attempts=10)),
        clock=clock,
    )

    app = FastAPI()
    app.include_router(routes.router)
    app.include_router(catalog.router)
    install_error_handlers(app)
    app.state.auth_service = service
    app.state.products = FakeDocumentRepository("products")
    app.state.releases = FakeDocumentRepository("releases")

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client, repository


def _signup(client: TestClient, email: str = "user@x.com", password: str = PASSWORD):
    return client.post(
        "/auth/signup", json={"email": email, "password": password, "name": "Ada"}
    )


def _login(client: TestClient, password: str, email: str = "user@x.com"):
    return client.post("/auth/login", json={"email": email, "password": password})


def test_signup_returns_public_projection(api_client):
    client, repository = api_client
    response = _signup(client, email="  User@X.com ")

    assert response.status_code == 201
    user = response.json()["user"]
    assert set(user) == {"id", "email", "name"}
    assert user["email"] == "user@x.com"
    assert repository.stored("user@x.com").password_hash != PASSWORD


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({"email": "", "password": PASSWORD, "name": "Ada"}, "Provide email, password and name"),
        ({"password": PASSWORD, "name": "Ada"}, "Provide email, password and name"),
        ({"email": "not-an-email", "password": PASSWORD, "name": "Ada"}, "Provide a valid email address."),
        ({"email": "a@b.c", "password": PASSWORD, "name": "Ada"}, "Provide a valid email address."),
        ({"email": "user@x.com", "password": "short1!", "name": "Ada"}, "Password must have"),
        ({"email": "user@x.com", "password": "alllower1!", "name": "Ada"}, "Password must have"),
        ({"email": "user@x.com", "password": "NoDigits!x", "name": "Ada"}, "Password must have"),
        (
            {"email": "user@x.com", "password": PASSWORD + "a" * 70, "name": "Ada"},
            "Password must be at most 72",
        ),
    ],
)
def test_signup_rejects_invalid_input(api_client, payload, message):
    client, _ = api_client
    response = client.post("/auth/signup", json=payload)
    assert response.status_code == 400
    assert response.json()["detail"].startswith(message)


def test_signup_duplicate_email_is_case_insensitive(api_client):
    client, repository = api_client
    assert _signup(client).status_code == 201

    response = _signup(client, email="USER@x.com")
    assert response.status_code == 400
    assert response.json()["detail"] == "User already exists."
    assert len(repository._accounts) == 1


def test_signup_conflict_from_store_unique_constraint(api_client):
    client, _ = api_client
    racing = RacingAccountRepository()
    client.app.state.auth_service = AuthService(
        racing, TokenIssuer(SECRET), AuthConfig(bcrypt_rounds=4)
    )
    assert _signup(client).status_code == 201

    response = _signup(client)

    assert response.status_code == 400
    assert response.json()["detail"] == "User already exists."
    assert len(racing._accounts) == 1


def test_login_issues_token_that_verifies(api_client):
    client, _ = api_client
    user = _signup(client).json()["user"]

    response = _login(client, PASSWORD, email="USER@x.com ")
    assert response.status_code == 200
    token = response.json()["authToken"]

    verified = client.get("/auth/verify", headers={"Authorization": f"Bearer {token}"})
    assert verified.status_code == 200
    claims = verified.json()
    assert {key: claims[key] for key in ("id", "email", "name")} == user
    assert claims["exp"] - claims["iat"] == 6 * 60 * 60


def test_login_requires_both_fields(api_client):
    client, _ = api_client
    response = client.post("/auth/login", json={"email": "user@x.com", "password": ""})
    assert response.status_code == 400
    assert response.json()["detail"] == "Provide email and password."


def test_unknown_email_and_wrong_password_look_the_same(api_client):
    client, _ = api_client
    _signup(client)

    unknown = _login(client, PASSWORD, email="nobody@x.com")
    wrong = _login(client, "Wrong1!pw")

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json()


def test_tenth_failure_locks_account(api_client):
    client, repository = api_client
    _signup(client)

    for attempt in range(1, 10):
        response = _login(client, "Wrong1!pw")
        assert response.status_code == 401
        assert repository.stored("user@x.com").failed_login_attempts == attempt

    tenth = _login(client, "Wrong1!pw")
    assert tenth.status_code == 423
    assert "too many failed login attempts" in tenth.json()["detail"]
    assert repository.stored("user@x.com").lock_until is not None


def test_locked_account_rejects_correct_password_without_mutation(api_client):
    client, repository = api_client
    _signup(client)
    for _ in range(10):
        _login(client, "Wrong1!pw")
    saves_before = repository.saves
    stored = repository.stored("user@x.com")
    state_before = (stored.failed_login_attempts, stored.lock_until)

    response = _login(client, PASSWORD)

    assert response.status_code == 423
    assert response.json()["detail"] == "Account locked. Please try again later."
    assert repository.saves == saves_before
    assert (stored.failed_login_attempts, stored.lock_until) == state_before


def test_expired_lock_allows_login_and_resets_state(api_client, clock):
    client, repository = api_client
    _signup(client)
    for _ in range(10):
        _login(client, "Wrong1!pw")

    clock.advance(minutes=5, seconds=1)
    response = _login(client, PASSWORD)

    assert response.status_code == 200
    stored = repository.stored("user@x.com")
    assert stored.failed_login_attempts == 0
    assert stored.lock_until is None


def test_expired_lock_restarts_attempt_count(api_client, clock):
    client, repository = api_client
    _signup(client)
    for _ in range(10):
        _login(client, "Wrong1!pw")

    clock.advance(minutes=6)
    response = _login(client, "Wrong1!pw")

    assert response.status_code == 401
    stored = repository.stored("user@x.com")
    assert stored.failed_login_attempts == 1
    assert stored.lock_until is None


def test_lock_is_still_active_just_before_expiry(api_client, clock):
    client, _ = api_client
    _signup(client)
    for _ in range(10):
        _login(client, "Wrong1!pw")

    clock.advance(minutes=4, seconds=59)
    assert _login(client, PASSWORD).status_code == 423


def test_success_resets_failed_attempts(api_client):
    client, repository = api_client
    _signup(client)
    for _ in range(3):
        _login(client, "Wrong1!pw")

    assert _login(client, PASSWORD).status_code == 200
    assert repository.stored("user@x.com").failed_login_attempts == 0


def test_each_checked_attempt_persists_once(api_client):
    client, repository = api_client
    _signup(client)

    _login(client, "Wrong1!pw")
    _login(client, PASSWORD)

    assert repository.saves == 2


@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"Authorization": "Bearer not-a-token"},
        {"Authorization": "Basic dXNlcjpwYXNz"},
    ],
)
def test_verify_rejects_missing_or_invalid_tokens(api_client, headers):
    client, _ = api_client
    response = client.get("/auth/verify", headers=headers)
    assert response.status_code == 401


def test_product_crud(api_client):
    client, _ = api_client
    created = client.post(
        "/products", json={"title": "Vinyl", "price": 25.5, "imageUrl": "http://img/1.png"}
    )
    assert created.status_code == 201
    product = created.json()
    assert product["title"] == "Vinyl"
    assert product["imageUrl"] == "http://img/1.png"

    assert [item["id"] for item in client.get("/products").json()] == [product["id"]]
    assert client.get(f"/products/{product['id']}").json()["price"] == 25.5

    updated = client.put(f"/products/{product['id']}", json={"price": 19.99})
    assert updated.status_code == 200
    assert updated.json()["price"] == 19.99
    assert updated.json()["title"] == "Vinyl"

    deleted = client.delete(f"/products/{product['id']}")
    assert deleted.status_code == 202
    assert client.get(f"/products/{product['id']}").status_code == 404


def test_product_update_rejects_null_required_fields(api_client):
    client, _ = api_client
    product = client.post("/products", json={"title": "Vinyl", "price": 25.5}).json()

    response = client.put(f"/products/{product['id']}", json={"title": None, "price": None})

    assert response.status_code == 422
    stored = client.get(f"/products/{product['id']}").json()
    assert stored["title"] == "Vinyl"
    assert stored["price"] == 25.5


def test_product_requires_title_and_price(api_client):
    client, _ = api_client
    assert client.post("/products", json={"title": "Vinyl"}).status_code == 422


def test_release_accepts_free_form_documents(api_client):
    client, _ = api_client
    created = client.post("/releases", json={"title": "Blue", "tracks": 10, "id": "forged"})
    assert created.status_code == 201
    release = created.json()
    assert release["tracks"] == 10
    assert release["id"] != "forged"

    updated = client.put(f"/releases/{release['id']}", json={"tracks": 11})
    assert updated.json()["tracks"] == 11
    assert updated.json()["title"] == "Blue"

    deleted = client.delete(f"/releases/{release['id']}")
    assert deleted.json() == {"detail": "The release has been deleted."}
    assert client.delete(f"/releases/{release['id']}").status_code == 404


def test_release_store_failure_is_generic_500(api_client):
    client, _ = api_client
    client.app.state.releases = BrokenDocumentRepository("releases")

    response = client.get("/releases")

    assert response.status_code == 500
    assert response.json() == {"detail": "Couldn't retrieve the releases."}


def test_unexpected_auth_store_failure_is_generic_500(api_client):
    client, repository = api_client
    _signup(client)

    def explode(account):
        raise RuntimeError("database is down: password_hash=...")

    repository.save_lockout_state = explode
    response = _login(client, "Wrong1!pw")

    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error."}
