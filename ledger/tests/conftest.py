import pytest
from fastapi.testclient import TestClient

from ledger.api import create_app
from ledger.config import Settings
from ledger.service import LedgerService


ADMIN_KEY = "test-admin-key"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'wallet.db'}",
        admin_key=ADMIN_KEY,
        log_json=False,
    )


@pytest.fixture
def service(settings):
    svc = LedgerService(settings)
    yield svc
    svc.engine.dispose()


@pytest.fixture
def make_service(settings):
    """Build services with overridden settings; their engines are disposed on teardown."""
    created = []

    def factory(**overrides):
        svc = LedgerService(settings.model_copy(update=overrides))
        created.append(svc)
        return svc

    yield factory
    for svc in created:
        svc.engine.dispose()


@pytest.fixture
def user(service):
    return service.signup("alice@example.com", "Alice", "hunter22")


@pytest.fixture
def client(service):
    return TestClient(create_app(service))


@pytest.fixture
def admin_key():
    return ADMIN_KEY
