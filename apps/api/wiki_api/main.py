from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wiki_api.core.config import get_settings
from wiki_api.core.metrics import metrics_response
from wiki_api.core.middleware import install_request_middleware
from wiki_api.routers.auth import router as auth_router
from wiki_api.routers.discord import router as discord_router
from wiki_api.routers.health import router as health_router
from wiki_api.routers.me import router as me_router


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Wiki API", version=settings.VERSION)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_request_middleware(app, settings)

    if settings.ENABLE_PROMETHEUS_METRICS:
        app.add_api_route(
            settings.PROMETHEUS_METRICS_PATH,
            metrics_response,
            methods=["GET"],
            include_in_schema=False,
        )

    for router in (health_router, auth_router, discord_router, me_router):
        app.include_router(router)
    return app


app = create_app()
