from typing import Generator

import pytest

from storefront.auth import CredentialService, TokenService
from storefront.config import Settings
from storefront.crud import Accounts, Catalog, Orders
from storefront.db import Base, build_engine, make_session_factory
from storefront.main import create_app, get_db

TEST_SECRET = "test-token-secret-0123456789abcdef"
TEST_PEPPER = "test-pepper"


@pytest.fixture
def settings() -> Settings:
    # low rounds keep hashing fast in tests
    return Settings(
        database_url="sqlite://",
        token_secret=TEST_SECRET,
        password_pepper=TEST_PEPPER,
        hash_rounds=1000,
        log_level="WARNING",
    )


@pytest.fixture(scope="function")
def db_session() -> Generator:
    # Use in-memory SQLite with a single connection
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = make_session_factory(engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def tokens(settings) -> TokenService:
    return TokenService(settings.token_secret, settings.token_ttl_seconds)


@pytest.fixture
def credentials(settings) -> CredentialService:
    return CredentialService(settings.password_pepper, settings.hash_rounds)


@pytest.fixture
def accounts(credentials, tokens) -> Accounts:
    return Accounts(credentials, tokens)


@pytest.fixture
def catalog() -> Catalog:
    return Catalog()


@pytest.fixture
def orders() -> Orders:
    return Orders()


@pytest.fixture(scope="function")
def app(settings):
    return create_app(settings)


@pytest.fixture(scope="function")
def client(app, db_session):
    # Override dependency to use the same session
    def override_get_db():
        try:
            yield db_session
        finally:
            pass
    app.dependency_overrides[get_db] = override_get_db
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    """Register a user through the API; returns ``(user, token)``."""
    def _register(first_name="Test", last_name="User", password="testpass123"):
        r = client.post("/users", json={"first_name": first_name, "last_name": last_name, "password": password})
        assert r.status_code == 200, r.text
        body = r.json()
        return body["user"], body["token"]
    return _register


@pytest.fixture
def auth_header(register):
    _, token = register()
    return {"Authorization": f"Bearer {token}"}
