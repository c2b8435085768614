from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from vibecode.api.deps import build_container, get_container
from vibecode.api.middleware import AuditMiddleware
from vibecode.api.preview import router as preview_router
from vibecode.api.v1.router import v1_router
from vibecode.common.logging import get_logger, setup_logging
from vibecode.common.metrics import metrics_middleware_factory
from vibecode.config import settings

VERSION = "1.0.0"

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    # Ensure the artifact output root exists
    Path(settings.CODE_OUTPUT_ROOT).mkdir(parents=True, exist_ok=True)
    app.state.container = build_container(settings)
    logger.info(
        "VibeCode started | env=%s | output=%s | augmentation=%s",
        settings.APP_ENV,
        settings.CODE_OUTPUT_ROOT,
        settings.HTML_AUGMENTATION,
    )
    yield
    await app.state.container.close()


app = FastAPI(
    title="VibeCode API",
    description="Prompt-to-app generation with live preview",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
origins = settings.ALLOWED_ORIGINS.split(",") if settings.ALLOWED_ORIGINS != "*" else ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(AuditMiddleware)
app.middleware("http")(metrics_middleware_factory())

# Routes
app.include_router(v1_router, prefix="/api/v1")
app.include_router(preview_router)


@app.get("/health")
async def health_check(request: Request):
    container = get_container(request)
    checks = {name: await integration.probe() for name, integration in container.integrations.items()}
    return {
        "status": "healthy" if all(checks.values()) else "degraded",
        "service": "vibecode",
        "version": VERSION,
        "env": settings.APP_ENV,
        "integrations": checks,
    }


@app.get("/metrics")
def metrics() -> Response:
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
