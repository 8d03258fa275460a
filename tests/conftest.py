"""Shared fixtures for usage gate tests."""

from types import MappingProxyType

import pytest
from fastapi.testclient import TestClient

from usagegate.app.core.config import AppConfig, QuotaLimits, Settings, StorageOptions
from usagegate.app.core.principals import parse_admin_set
from usagegate.app.core.security import TokenService
from usagegate.app.main import create_app
from usagegate.app.storage.memory import InMemoryQuotaBackend
from usagegate.app.storage.repository import QuotaRepository

TEST_SECRET = "test-signing-secret-for-usagegate-tests"


def _build_config(
    secret: str = TEST_SECRET,
    admins: str = "admin",
    credentials: dict | None = None,
    limits: QuotaLimits | None = None,
    write_retries: int = 3,
    ttl: int = 3600,
) -> AppConfig:
    """Build an AppConfig without touching the environment."""
    return AppConfig(
        auth_secret=secret,
        token_ttl_seconds=ttl,
        admins=parse_admin_set(admins),
        credentials=MappingProxyType(credentials or {}),
        limits=limits or QuotaLimits(),
        storage=StorageOptions(force_memory=True, write_retries=write_retries),
    )


@pytest.fixture
def config() -> AppConfig:
    return _build_config(credentials={"alice": "plain:wonderland", "admin": "plain:root-pass"})


@pytest.fixture
def token_service(config) -> TokenService:
    return TokenService(config)


@pytest.fixture
def memory_repository() -> QuotaRepository:
    return QuotaRepository(durable=None, memory=InMemoryQuotaBackend())


@pytest.fixture
def test_settings() -> Settings:
    return Settings(_env_file=None, log_level="WARNING", cors_origins="*")


@pytest.fixture
def app(test_settings, config, memory_repository):
    return create_app(settings=test_settings, config=config, repository=memory_repository)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def auth_headers(token_service):
    """Return a factory producing bearer headers for a user id."""

    def _headers(user_id: str) -> dict[str, str]:
        token = token_service.issue(user_id).token
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def make_config():
    """Return the AppConfig builder for tests that need custom settings."""
    return _build_config
