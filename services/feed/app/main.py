import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.database import init_db
from app.dependencies import get_settings
from app.feed.router import router as feed_router
from shared.database.redis_client import get_redis_client
from shared.middleware.error_handler import error_envelope_middleware
from shared.middleware.request_id import RequestIdLogFilter, request_id_middleware

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [%(request_id)s] %(message)s"

# Swagger tag groups displayed in the OpenAPI docs sidebar
_OPENAPI_TAGS = [
    {
        "name": "Feed",
        "description": (
            "Ranked feeds. Home: the viewer's follow graph. Explore: accounts the viewer "
            "does not follow. Search: text matches re-ranked with social signals. "
            "Rankings are recomputed on every request; pages are offset-based."
        ),
    },
    {
        "name": "Health",
        "description": "Liveness probe.",
    },
]


def configure_logging(level: str) -> None:
    handler = logging.StreamHandler()
    handler.addFilter(RequestIdLogFilter())
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    logging.basicConfig(level=level.upper(), handlers=[handler], force=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    init_db(settings.feed_database_url, command_timeout_s=settings.ranking_query_timeout_s)
    redis_client = get_redis_client(settings.redis_url)
    app.state.redis = redis_client

    yield

    await redis_client.aclose()


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)
    app = FastAPI(
        title="Feed Ranking Service",
        description=(
            "Ranks and paginates home, explore and search results for a viewer by "
            "blending social-graph proximity, engagement velocity, hashtag interest, "
            "recency and negative-feedback suppression."
        ),
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=_OPENAPI_TAGS,
        lifespan=lifespan,
    )

    # CORS must be registered first (runs last in middleware stack)
    # so that preflight OPTIONS requests get CORS headers before any auth check.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )
    app.middleware("http")(error_envelope_middleware)
    app.middleware("http")(request_id_middleware)

    app.include_router(feed_router, prefix="/api/v1")

    @app.get("/health", tags=["Health"])
    async def health() -> dict:
        """Lightweight liveness probe. Does not hit the database."""
        return {"status": "ok", "service": "feed"}

    return app


app = create_app()
