"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from microcredit_engine.api.middleware import RequestIDMiddleware, MetricsMiddleware
from microcredit_engine.api.v1 import credits, customers, eligibility, groups, jobs
from microcredit_engine.infrastructure.observability.logging import setup_logging
from microcredit_engine.config import settings

ROUTERS = (
    (eligibility.router, "eligibility"),
    (credits.router, "credits"),
    (customers.router, "customers"),
    (groups.router, "groups"),
    (jobs.router, "jobs"),
)


def create_app() -> FastAPI:
    """Build the HTTP surface over the credit services"""
    setup_logging(component="api")

    app = FastAPI(
        title="Microcredit Engine",
        description="Credit eligibility, lifecycle, settlement and renewal service",
        version="0.1.0",
    )

    # Last added runs first, so every recorded request already carries its ID
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    for router, tag in ROUTERS:
        app.include_router(router, prefix="/v1", tags=[tag])

    return app


app = create_app()
