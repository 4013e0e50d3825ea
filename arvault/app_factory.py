"""Application factory.

Builds the Litestar app and the collaborators it owns for its lifetime:
the object store, token verifier, access resolver, upload coordinator
and rate limiters. Nothing here is a module-level singleton, so tests can
build as many independent apps as they like.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from advanced_alchemy.config import EngineConfig
from advanced_alchemy.extensions.litestar import (
    AsyncSessionConfig,
    SQLAlchemyAsyncConfig,
    SQLAlchemyPlugin,
)
from litestar import Litestar
from litestar.middleware import DefineMiddleware

from arvault.auth.access import AccessResolver
from arvault.auth.secrets import candidate_secrets, signing_secret
from arvault.auth.tokens import TokenVerifier, UploadSessionSigner
from arvault.config import Settings, get_settings
from arvault.controllers import ROUTE_HANDLERS
from arvault.db.base import Base
from arvault.lib import observability
from arvault.lib.exceptions import EXCEPTION_HANDLERS
from arvault.lib.rate_limit import build_limiters
from arvault.lib.storage import create_object_store
from arvault.middleware.rate_limit import RateLimitMiddleware
from arvault.middleware.request_id import RequestIdMiddleware
from arvault.uploads.coordinator import UploadSessionCoordinator

import arvault.db.models  # noqa: F401  registers tables on Base.metadata

logger = logging.getLogger(__name__)


def build_db_config(settings: Settings) -> SQLAlchemyAsyncConfig:
    if "sqlite" in settings.db.url:
        engine_config = EngineConfig(echo=settings.db.echo)
    else:
        engine_kwargs: dict[str, Any] = dict(
            pool_size=settings.db.pool_size,
            max_overflow=settings.db.pool_overflow,
            pool_timeout=settings.db.pool_timeout,
            pool_pre_ping=settings.db.pool_pre_ping,
            echo=settings.db.echo,
        )
        engine_config = EngineConfig(**engine_kwargs)

    return SQLAlchemyAsyncConfig(
        connection_string=settings.db.url,
        metadata=Base.metadata,
        create_all=settings.db.create_all,
        session_config=AsyncSessionConfig(expire_on_commit=False),
        engine_config=engine_config,
    )


def create_app(settings: Settings | None = None) -> Litestar:
    """Create and configure the Litestar application."""
    settings = settings or get_settings()
    observability.configure(settings)

    secrets = candidate_secrets(settings.secret_key, settings.secret_key_alt)
    if not secrets:
        raise ValueError("SECRET_KEY must be set (run `arvault secret --write .env`)")

    db_config = build_db_config(settings)
    object_store = create_object_store(settings.storage)
    token_verifier = TokenVerifier(secrets)
    access_resolver = AccessResolver(
        token_verifier,
        share_path_prefixes=settings.auth.share_path_prefixes,
        asset_token_max_ttl=settings.auth.asset_token_max_ttl,
    )
    secret_key = signing_secret(settings.secret_key or settings.secret_key_alt)
    upload_coordinator = UploadSessionCoordinator(
        object_store, settings.uploads, UploadSessionSigner(secret_key, secrets)
    )

    middleware = [DefineMiddleware(RequestIdMiddleware)]
    default_limiter, group_limiters = build_limiters(settings.rate_limit)
    if settings.rate_limit.enabled:
        middleware.append(
            DefineMiddleware(RateLimitMiddleware, default=default_limiter, groups=group_limiters)
        )

    async def on_startup(_app: Litestar) -> None:
        if settings.storage.backend == "local":
            Path(settings.storage.local_path).mkdir(parents=True, exist_ok=True)
        observability.instrument_sqlalchemy(db_config.get_engine())

    async def on_shutdown(_app: Litestar) -> None:
        await object_store.close()

    app = Litestar(
        route_handlers=ROUTE_HANDLERS,
        on_startup=[on_startup],
        on_shutdown=[on_shutdown],
        plugins=[SQLAlchemyPlugin(config=db_config)],
        middleware=middleware,
        exception_handlers=EXCEPTION_HANDLERS,
        request_max_body_size=settings.uploads.max_request_body,
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.object_store = object_store
    app.state.token_verifier = token_verifier
    app.state.signing_secret = secret_key
    app.state.access_resolver = access_resolver
    app.state.upload_coordinator = upload_coordinator
    app.state.session_factory = db_config.get_session
    app.state.rate_limiters = {"": default_limiter, **group_limiters}
    return app
