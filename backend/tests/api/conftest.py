"""API-specific test fixtures."""

from contextlib import asynccontextmanager

import pytest
from fakeredis import FakeAsyncRedis
from fastapi import FastAPI
from fastapi.testclient import TestClient


@pytest.fixture
def api_client(tmp_path):
    """FastAPI test client running the real app against SQLite and fake Redis.

    init_db/init_redis run inside the TestClient's own event loop so route
    handlers can use get_session_factory() and get_redis().
    """
    import bsos.db.base as db_mod
    import bsos.db.redis as redis_mod
    from bsos.db import close_db, close_redis, init_db, init_redis
    from bsos.main import create_app

    db_url = f"sqlite+aiosqlite:///{tmp_path / 'api.db'}"

    @asynccontextmanager
    async def test_lifespan(app: FastAPI):
        """Test lifespan - initialize DB and Redis in TestClient's event loop."""
        db_mod._engine = None
        db_mod._session_factory = None
        redis_mod._redis = None
        app.state.shutting_down = False
        await init_db(db_url)
        await init_redis(client=FakeAsyncRedis(decode_responses=True))
        yield
        await close_redis()
        await close_db()

    app = create_app()
    app.router.lifespan_context = test_lifespan

    with TestClient(app) as client:
        yield client


@pytest.fixture
def finance_client(api_client):
    """api_client carrying a role cookie that may read financial records."""
    from bsos.core.auth import ROLE_COOKIE

    api_client.cookies.set(ROLE_COOKIE, "owner")
    return api_client
