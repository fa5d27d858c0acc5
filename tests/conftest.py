"""
Shared fixtures for handbook backend tests.

Each test gets its own SQLite database file (aiosqlite) with the full schema,
an in-memory object store, and a remote model client that is either
unconfigured (the default) or backed by an ``httpx.MockTransport``.  The
FastAPI app is driven through httpx's ASGITransport with a service container
assigned to ``app.state.container``; the lifespan is not run.
"""
from __future__ import annotations

import os
from typing import AsyncGenerator, Callable, Dict, List, Optional, Sequence

import fitz  # PyMuPDF
import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Configure settings *before* any app module is imported, so that the
# settings singleton picks them up.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./unused-test.db"
os.environ["JWT_SECRET"] = "test-secret-key-for-handbook-tests-only"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["XAI_API_KEY"] = ""
os.environ["OBJECT_STORE_BACKEND"] = "local"

from app.config import settings  # noqa: E402
from app.database import create_engine, create_session_factory, init_db  # noqa: E402
from app.dependencies.services import ServiceContainer, build_container  # noqa: E402
from app.main import app  # noqa: E402
from app.services.llm_client import XaiChatClient  # noqa: E402
from app.services.object_store import ObjectStoreError  # noqa: E402


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class InMemoryObjectStore:
    """Object store double; set ``fail_on`` to make an operation raise."""

    def __init__(self) -> None:
        self.objects: Dict[str, bytes] = {}
        self.fail_on: set = set()

    async def upload(self, path: str, data: bytes, content_type: str, upsert: bool = False) -> None:
        if "upload" in self.fail_on:
            raise ObjectStoreError("upload refused")
        if path in self.objects and not upsert:
            raise ObjectStoreError(f"Object already exists: {path}")
        self.objects[path] = bytes(data)

    async def download(self, path: str) -> bytes:
        if "download" in self.fail_on or path not in self.objects:
            raise ObjectStoreError(f"Object not found: {path}")
        return self.objects[path]

    async def remove(self, paths: Sequence[str]) -> None:
        if "remove" in self.fail_on:
            raise ObjectStoreError("remove refused")
        for path in paths:
            self.objects.pop(path, None)

    async def check(self) -> bool:
        return True


def make_llm(handler: Callable[[httpx.Request], httpx.Response]) -> XaiChatClient:
    """A configured client whose HTTP calls go to *handler*."""
    return XaiChatClient(
        api_key="test-xai-key",
        base_url="https://llm.test/v1",
        model="grok-test",
        temperature=0.2,
        timeout=5.0,
        transport=httpx.MockTransport(handler),
    )


def completion(text: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": text}}]})


def make_pdf(pages: List[str]) -> bytes:
    """Build a real PDF with one page per string (empty strings give blank pages)."""
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_textbox(fitz.Rect(50, 50, 550, 800), text, fontsize=10)
    data = doc.tobytes()
    doc.close()
    return data


# ---------------------------------------------------------------------------
# Per-test fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(bind=engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def build(session_factory, object_store):
    """Factory for service containers sharing this test's database and store."""

    def _build(llm: Optional[XaiChatClient] = None) -> ServiceContainer:
        return build_container(
            settings,
            session_factory,
            object_store=object_store,
            llm=llm or XaiChatClient(api_key=""),
        )

    return _build


@pytest.fixture
def container(build) -> ServiceContainer:
    return build()


@pytest_asyncio.fixture
async def client(container: ServiceContainer) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient wired to the FastAPI app with the test container."""
    app.state.container = container

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await container.runner.drain(timeout=5)
    app.state.container = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def sign_up(client: AsyncClient, username: str = "alice", password: str = "s3cret-pass") -> Dict[str, str]:
    """Create a user and return Authorization headers for it."""
    resp = await client.post("/api/auth/sign-up", json={"username": username, "password": password})
    assert resp.status_code == 201, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}


@pytest_asyncio.fixture
async def auth_headers(client: AsyncClient) -> Dict[str, str]:
    return await sign_up(client)
