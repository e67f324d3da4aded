from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI

from backend.app.config import Settings, load_settings
from backend.app.logging_config import setup_logging
from backend.app.integrations.api.router import router as integrations_router
from backend.app.integrations.services.fetcher import Fetcher, with_bearer
from backend.app.integrations.services.manager import IntegrationManager
from backend.app.integrations.store.flat import FlatStore
from backend.app.integrations.store.hooks import StoreHooks

logger = logging.getLogger("integrations.core")


def build_manager(settings: Settings, hooks: Optional[StoreHooks] = None) -> IntegrationManager:
    store = FlatStore(
        settings.pkg_dir,
        settings.cache_dir,
        platform=settings.platform,
        hooks=hooks,
        suffix=settings.archive_suffix,
    )
    fetcher = Fetcher(
        platform=settings.platform,
        user_agent=settings.user_agent,
        authorizer=with_bearer(lambda: settings.token),
        timeout=settings.request_timeout,
    )
    return IntegrationManager(
        store,
        fetcher,
        platform=settings.platform,
        install_url=settings.install_url,
        api_url=settings.api_url,
        binary_needs_auth=settings.binary_needs_auth,
    )


def create_app(settings: Optional[Settings] = None, hooks: Optional[StoreHooks] = None) -> FastAPI:
    settings = settings or load_settings()
    setup_logging(settings.log_dir, settings.log_level)

    app = FastAPI(title="Integrations", response_model_by_alias=False)
    app.state.settings = settings
    app.state.integration_manager = build_manager(settings, hooks)
    app.include_router(integrations_router, prefix="/api/integrations", tags=["integrations"])

    @app.on_event("startup")
    async def startup_event() -> None:
        logger.info("Rehydrating installed integrations")
        try:
            app.state.integration_manager.store.reload_all()
        except Exception:
            # keep serving so the broken entry can be removed over the API
            logger.exception("Reloading installed integrations failed")

    @app.get("/api/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": "integrations"}

    logger.info("Integrations backend starting (platform=%s/%s)", settings.platform.os, settings.platform.arch)
    return app


app = create_app()
