"""
Shared fixtures: an isolated SQLite database per test, services and an HTTP client
"""
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from mdpress.config import reload_settings
from mdpress.dependencies import get_container
from mdpress.logging import metrics


@pytest.fixture
def test_env(tmp_path, monkeypatch):
    """Point every settings class at a throwaway database"""
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'mdpress-test.db'}")
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    monkeypatch.setenv("LOG_LEVEL", "ERROR")
    reload_settings()
    get_container.cache_clear()
    yield
    reload_settings()
    get_container.cache_clear()


@pytest_asyncio.fixture
async def container(test_env):
    container = get_container()
    await container.database.create_all()
    yield container
    await container.close()


@pytest.fixture
def database(container):
    return container.database


@pytest.fixture
def auth_service(container):
    return container.auth_service


@pytest.fixture
def documents(container):
    return container.document_service


@pytest.fixture
def publication(container):
    return container.publication_service


@pytest.fixture
def search_service(container):
    return container.search_service


@pytest.fixture
def interactions(container):
    return container.interaction_service


@pytest.fixture
def analytics(container):
    return container.analytics_service


@pytest_asyncio.fixture
async def alice(auth_service):
    session = await auth_service.register("alice@example.com", "password-a")
    return session.user.id


@pytest_asyncio.fixture
async def bob(auth_service):
    session = await auth_service.register("bob@example.com", "password-b")
    return session.user.id


@pytest.fixture
def make_document(documents):
    """Create a document with the given body for a user"""
    async def _make(owner_id: int, name: str = "draft.md", content: str = "Some body text"):
        document = await documents.create_file(owner_id, name)
        return await documents.update_file(owner_id, document.id, {"content": content})
    return _make


@pytest_asyncio.fixture
async def client(container):
    """HTTP client bound to the app with empty in-memory metrics; the schema is created by the container fixture"""
    from mdpress.main import app

    await metrics.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
