"""ASGI application factory for postboard."""

import logging
from typing import Any

from advanced_alchemy.config import EngineConfig
from advanced_alchemy.extensions.litestar import (
    AsyncSessionConfig,
    SQLAlchemyAsyncConfig,
    SQLAlchemyPlugin,
)
from litestar import Litestar

from postboard.config import Settings, get_settings
from postboard.controllers.comments import CommentController
from postboard.controllers.posts import PostController
from postboard.db.base import Base
from postboard.db import models  # noqa: F401
from postboard.lib import observability
from postboard.lib.exceptions import EXCEPTION_HANDLERS

logger = logging.getLogger(__name__)


def create_db_config(settings: Settings) -> SQLAlchemyAsyncConfig:
    """Build the advanced-alchemy config; SQLite gets its schema created on startup."""
    is_sqlite = "sqlite" in settings.db.url
    if is_sqlite:
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
        create_all=is_sqlite,
        session_config=AsyncSessionConfig(expire_on_commit=False),
        engine_config=engine_config,
    )


def create_app(settings: Settings | None = None):
    """Create and configure the Litestar application.

    Returns the Litestar app, wrapped in Logfire's ASGI instrumentation when
    Logfire is enabled.
    """
    settings = settings or get_settings()
    observability.configure(settings)

    db_config = create_db_config(settings)

    async def on_startup(_app: Litestar) -> None:
        observability.instrument_sqlalchemy(db_config.get_engine())
        logger.info("postboard started (database: %s)", db_config.get_engine().url.drivername)

    app = Litestar(
        on_startup=[on_startup],
        route_handlers=[PostController, CommentController],
        plugins=[SQLAlchemyPlugin(config=db_config)],
        exception_handlers=EXCEPTION_HANDLERS,
        debug=settings.debug,
    )
    return observability.instrument_app(app)


app = create_app()
