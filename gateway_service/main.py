"""API entry point for the AI-Driven LCA Tool: mounts the services under /api, handles errors and metrics."""

import logging
import time

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.routing import Match

from auth_service.main import router as auth_router
from chat_service.main import router as chat_router
from common.config import get_settings
from common.http import close_http_client
from transport_service.main import router as transport_router

# Logger configuration
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

app = FastAPI(
    title="AI-Driven LCA Tool API",
    description="Authentication, emissions estimates and the LCA assistant for mining and metallurgy.",
    version="1.0.0",
)

# --- CORS ---
_origins = list(get_settings().cors_origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials="*" not in _origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Prometheus metrics ---
REQUEST_COUNT = Counter(
    "lca_requests_total",
    "Total requests processed by the LCA API",
    ["method", "endpoint", "status_code"]
)
REQUEST_LATENCY = Histogram(
    "lca_request_latency_seconds",
    "Request latency in seconds for the LCA API",
    ["endpoint"]
)


def _route_template(request: Request) -> str:
    """Label requests by route path template so arbitrary URLs add no new series."""
    for route in request.app.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return route.path
    return "unmatched"


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start_time = time.time()
    response = None
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
    except Exception as exc:
        # Nothing may crash the process: unexpected errors become a generic 500.
        logger.error(f"Unhandled exception during {request.method} {request.url.path}: {exc}", exc_info=True)
        response = JSONResponse(status_code=500, content={"error": "Internal server error"})
    finally:
        latency = time.time() - start_time
        endpoint = _route_template(request)
        final_status_code = getattr(response, "status_code", status_code)
        REQUEST_LATENCY.labels(endpoint=endpoint).observe(latency)
        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=final_status_code
        ).inc()

    return response


# --- Error rendering ---
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """String details become {"error": ...}; dict details (chat errors with a reply) are sent as-is."""
    content = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Invalid request to {request.url.path}: {exc.errors()}")
    details = [
        {"field": ".".join(str(part) for part in error["loc"] if part != "body"), "message": error["msg"]}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request", "details": details},
    )


# --- Routes ---
app.include_router(auth_router, prefix="/api")
app.include_router(transport_router, prefix="/api")
app.include_router(chat_router, prefix="/api")


@app.get("/", response_class=PlainTextResponse, include_in_schema=False)
def root():
    return "Backend is running..."


@app.get("/metrics", tags=["Monitoring"])
def metrics():
    """Exposes application metrics for Prometheus."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.on_event("shutdown")
async def shutdown_event():
    """Closes the outbound HTTP client when the application stops."""
    await close_http_client()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("gateway_service.main:app", host="0.0.0.0", port=5000)
