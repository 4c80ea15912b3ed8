from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime

from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from .routers.demos import router as demos_router
from .routers.models import router as models_router
from ..domain.errors import NotAuthorized, NotFound
from ..observability.metrics import metrics_middleware_factory
from ..services.demo_service import get_demo_service

load_dotenv()  # Load environment variables from .env if present (OPENAI_API_KEY, XAI_API_KEY, etc.)

API_NAME = "Model Arena API"
API_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = get_demo_service().scheduler
    scheduler.recover()
    try:
        yield
    finally:
        await scheduler.shutdown()


app = FastAPI(title=API_NAME, version=API_VERSION, lifespan=lifespan)

# Observability: request latency histogram
app.middleware("http")(metrics_middleware_factory())

# Routers
app.include_router(demos_router)
app.include_router(models_router)

# Also expose the same routers under /api
app.include_router(demos_router, prefix="/api")
app.include_router(models_router, prefix="/api")

# CORS (for the web client dev server on localhost:3000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(NotAuthorized)
async def not_authorized_handler(request: Request, exc: NotAuthorized) -> JSONResponse:
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": _validation_errors(exc)})


def _validation_errors(exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        errors.append({"loc": list(err.get("loc", ())), "msg": str(err.get("msg", "")), "type": err.get("type")})
    return errors


def _health() -> dict:
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        "components": {
            "api": "ok",
        },
    }


@app.get("/")
def root():
    return {"name": API_NAME, "version": API_VERSION}


@app.get("/health")
def health():
    return _health()


@app.get("/metrics")
def metrics() -> Response:
    # Expose Prometheus metrics
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


# API-prefixed convenience routes (kept alongside non-prefixed routes)
@app.get("/api")
def api_root():
    return {"name": API_NAME, "version": API_VERSION}


@app.get("/api/health")
def api_health():
    return _health()


@app.get("/api/metrics")
def api_metrics() -> Response:
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
