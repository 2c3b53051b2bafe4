import contextlib
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from supportboard.api.routes import metrics, sync
from supportboard.config import settings
from supportboard.database import engine


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not (settings.zendesk_subdomain and settings.zendesk_api_token):
        logging.warning(
            "ZENDESK_SUBDOMAIN / ZENDESK_API_TOKEN are not set. "
            "Sync endpoints will fail until they are configured in your .env file."
        )
    if not settings.target_agent_ids:
        logging.warning("TARGET_AGENT_IDS is empty; syncs will not calculate any metrics.")
    yield
    await engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(title="Supportboard", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/v1/health")
    async def health_check():
        return {"status": "ok"}

    app.include_router(metrics.router, prefix="/api/v1/metrics", tags=["metrics"])
    app.include_router(sync.router, prefix="/api/v1/sync", tags=["sync"])

    return app


app = create_app()
