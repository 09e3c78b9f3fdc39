from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import FastAPI
from loguru import logger
from tortoise.contrib.fastapi import RegisterTortoise

from banquet_bookings import settings
from banquet_bookings.exceptions import AuthorizationError, register_exception_handlers
from banquet_bookings.roles import role_directory
from banquet_bookings.routers import admin, bookings, halls


async def _bootstrap_super_admin() -> None:
    if not settings.bootstrap_super_admin_id:
        return
    try:
        await role_directory.bootstrap(UUID(settings.bootstrap_super_admin_id))
    except AuthorizationError:
        logger.info("Super admin already present, skipping bootstrap")


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with RegisterTortoise(
        app,
        db_url=settings.db_url,
        modules=settings.TORTOISE_MODULES,
        generate_schemas=True,
        use_tz=True,
    ):
        await _bootstrap_super_admin()
        yield


def create_app() -> FastAPI:
    app = FastAPI(title="Banquet Bookings", lifespan=lifespan)
    register_exception_handlers(app)
    app.include_router(bookings.router)
    app.include_router(halls.router)
    app.include_router(admin.router)
    return app


app = create_app()
