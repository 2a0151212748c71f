from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from reverse_proxy_auth import __version__
from reverse_proxy_auth.logging import configure_logging, logger
from reverse_proxy_auth.settings import Settings

from . import admin, header_auth
from .cache import RedisAuthorityCache, make_authority_cache
from .gateway import IdentityGateway, TrustedHeaderMiddleware
from .realm import RealmConfig, build_realm


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    configure_logging(settings.log_level, settings.log_type)
    # A gateway handed to create_app() (tests) is used as-is
    if getattr(app.state, "gateway", None) is None:
        config = await RealmConfig.from_settings(settings)
        app.state.gateway = IdentityGateway(
            build_realm(config), make_authority_cache(settings)
        )
    gateway: IdentityGateway = app.state.gateway
    config = gateway.realm.config
    logger.info(
        "app.startup",
        header=config.trusted_header,
        directory=config.uses_directory,
        server=config.server,
        root_dn=config.root_dn,
        cache=getattr(gateway.cache, "backend", None),
    )
    yield
    if isinstance(gateway.cache, RedisAuthorityCache):
        await gateway.cache.close()
    logger.info("app.shutdown")


def create_app(
    settings: Settings | None = None, gateway: IdentityGateway | None = None
) -> FastAPI:
    app = FastAPI(
        title="reverse-proxy-ldap-auth", version=__version__, lifespan=lifespan
    )
    app.state.settings = settings if settings is not None else Settings()
    app.state.gateway = gateway
    app.add_middleware(TrustedHeaderMiddleware)
    app.include_router(header_auth.router)
    app.include_router(admin.router)
    return app


app = create_app()
