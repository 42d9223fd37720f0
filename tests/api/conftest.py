"""Fixtures for HTTP API tests (FastAPI)."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient

import trellis.http_api as api_module
from tests.conftest import PopulatedDB
from trellis.http_api import create_app


@pytest.fixture
def api_db(populated_db: PopulatedDB) -> PopulatedDB:
    """Use the populated_db fixture for API tests.

    Reconnects the underlying DB with check_same_thread=False so the
    sync dependency can hand it across FastAPI's threadpool.
    """
    populated_db.db.reconnect(check_same_thread=False)
    return populated_db


@pytest.fixture
async def client(api_db: PopulatedDB) -> AsyncIterator[AsyncClient]:
    """Test client bound to the populated database."""
    api_module._db = api_db.db
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    api_module._db = None
