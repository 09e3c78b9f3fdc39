"""
Shared pytest fixtures available to every test file automatically.
No imports needed in test files; pytest discovers this by convention.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from tortoise import Tortoise, connections

from banquet_bookings import settings
from banquet_bookings.deps import get_acting_role, get_current_user, get_users_client
from banquet_bookings.exceptions import register_exception_handlers
from banquet_bookings.models import AdminRole
from banquet_bookings.routers import admin, bookings, halls

from .factories import make_admin, make_customer

# ---------------------------------------------------------------------------
# Database: fresh in-memory SQLite per test
# ---------------------------------------------------------------------------


@pytest.fixture()
async def db():
    await Tortoise.init(
        db_url="sqlite://:memory:",
        modules=settings.TORTOISE_MODULES,
        use_tz=True,
    )
    await Tortoise.generate_schemas()
    yield
    await connections.close_all()


# ---------------------------------------------------------------------------
# Default no-op client mocks: prevent real HTTP calls in tests
# ---------------------------------------------------------------------------


def _noop_users_client():
    mock = MagicMock()
    mock.create_user = AsyncMock(return_value={"id": "00000000-0000-0000-0000-000000000000"})
    return mock


# ---------------------------------------------------------------------------
# App builder: used by all client fixtures
# ---------------------------------------------------------------------------


def build_app(
    current_user,
    acting_role: AdminRole | None = None,
    users_client=None,
) -> FastAPI:
    """
    Fresh FastAPI app with identity and role resolution overridden to return
    `current_user` / `acting_role` unconditionally. Scope checks still run.
    """
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(bookings.router)
    app.include_router(halls.router)
    app.include_router(admin.router)

    async def _user():
        return current_user

    async def _role():
        return acting_role

    app.dependency_overrides[get_current_user] = _user
    app.dependency_overrides[get_acting_role] = _role

    uc = users_client if users_client is not None else _noop_users_client()
    app.dependency_overrides[get_users_client] = lambda: uc

    return app


# ---------------------------------------------------------------------------
# Reusable client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def customer_client():
    return TestClient(build_app(make_customer()), raise_server_exceptions=True)


@pytest.fixture()
def super_admin_client():
    return TestClient(
        build_app(make_admin(AdminRole.SUPER_ADMIN), AdminRole.SUPER_ADMIN),
        raise_server_exceptions=True,
    )


@pytest.fixture()
def anon_app():
    """
    Bare app with NO dependency overrides.
    Use this when you want real auth deps to run so you can assert 401/403/422.
    """
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(bookings.router)
    app.include_router(halls.router)
    app.include_router(admin.router)
    return app


@pytest.fixture()
def client_factory():
    def _make(current_user, acting_role=None, users_client=None) -> TestClient:
        return TestClient(
            build_app(current_user, acting_role=acting_role, users_client=users_client),
            raise_server_exceptions=True,
        )

    return _make
