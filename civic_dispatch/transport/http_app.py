# civic_dispatch/transport/http_app.py
"""
HTTP surface for the dispatch subsystem.

Thin transport layer: routes parse the request, call ``DispatchService``
(or the registry) and map ``DispatchError`` subtypes to JSON responses.
All dispatch behaviour lives in ``civic_dispatch.core``.

Endpoints:
    GET  /health
    GET  /targets
    GET  /targets/nearby?lat=&lng=[&radius_km=][&category=]
    GET  /targets/{target_id}
    POST /issues/{issue_id}/dispatch
    GET  /issues/{issue_id}/submissions
    POST /issues/{issue_id}/drafts
    GET  /metrics
"""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from civic_dispatch.config import Settings, settings as default_settings, validate_or_warn
from civic_dispatch.core.dispatch.orchestrator import DispatchOrchestrator
from civic_dispatch.core.dispatch.services import DispatchService, drafts_as_text
from civic_dispatch.core.domain import GeoPoint, IssueCategory
from civic_dispatch.core.errors import DispatchError, OrchestratorFault, TargetNotFoundError
from civic_dispatch.core.geo import NeighborhoodResolver
from civic_dispatch.core.registry import EntityRegistry, load_registry
from civic_dispatch.infra.delivery_transports import get_delivery_transport
from civic_dispatch.infra.http_client import close_all_sessions
from civic_dispatch.infra.ledger import get_submission_ledger
from civic_dispatch.infra.logging_config import get_logger, setup_logging
from civic_dispatch.infra.metrics import get_metrics_collector
from civic_dispatch.transport.middleware import (
    ErrorHandlingMiddleware,
    RequestIDMiddleware,
    RequestLoggingMiddleware,
)
from civic_dispatch.transport.schemas import (
    DispatchOut,
    DraftOut,
    DraftsOut,
    IssueIn,
    NearbyTargetOut,
    OutcomeOut,
    SubmissionRecordOut,
    SubmissionsOut,
    TargetOut,
)

logger = get_logger(__name__)

# Shown instead of the fault detail: the reporter cannot act on internals
ROUND_FAULT_MESSAGE = "Dispatch could not be completed. Please try again later."


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_service(request: Request) -> DispatchService:
    return request.app.state.dispatch_service


def get_registry(request: Request) -> EntityRegistry:
    return request.app.state.registry


# ============================================================================
# LIFESPAN
# ============================================================================

@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    """Application lifecycle: startup and shutdown"""
    s: Settings = fastapi_app.state.settings

    # STARTUP
    logger.info(
        f"Starting application: env={s.app_env}, transport={s.dispatch_transport}, "
        f"radius={s.dispatch_radius_km:g}km"
    )

    # Validate configuration (raises in prod when required settings are missing)
    validate_or_warn(s)

    registry = load_registry(s.targets_path)
    transport = get_delivery_transport(s)
    orchestrator = DispatchOrchestrator(
        transport,
        registry=registry,
        issuing_system=s.issuing_system,
    )
    ledger = get_submission_ledger(s.ledger_path)
    resolver = NeighborhoodResolver(registry, s.dispatch_radius_km)

    fastapi_app.state.registry = registry
    fastapi_app.state.dispatch_service = DispatchService(resolver, orchestrator, ledger)

    logger.info("Application startup complete")

    yield

    # SHUTDOWN
    logger.info("Shutting down application")
    await close_all_sessions()
    logger.info("Application shutdown complete")


# ============================================================================
# CREATE APP
# ============================================================================

def create_app(s: Settings | None = None) -> FastAPI:
    s = s or default_settings

    setup_logging(level=s.log_level, use_json=s.is_production)

    app = FastAPI(
        title="Civic Dispatch",
        description="Routes civic issue reports to nearby municipal authorities",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None if s.is_production else "/docs",
        redoc_url=None if s.is_production else "/redoc",
        openapi_url=None if s.is_production else "/openapi.json",
    )
    app.state.settings = s

    if s.is_production or s.is_staging:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=s.allowed_origins if s.allowed_origins != ["*"] else [],
            allow_credentials=False,
            allow_methods=["GET", "POST"],
            allow_headers=["Content-Type", "Authorization"],
        )
    else:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestLoggingMiddleware, enabled=s.enable_request_logging)
    app.add_middleware(RequestIDMiddleware)

    _register_exception_handlers(app)
    _register_routes(app)
    return app


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

def _register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(DispatchError)
    async def dispatch_error_handler(request: Request, exc: DispatchError):
        if isinstance(exc, OrchestratorFault):
            logger.error(
                f"Dispatch round fault: {exc.detail}",
                extra={"request_id": getattr(request.state, "request_id", "unknown")},
            )
            return JSONResponse(status_code=exc.status_code, content={"error": ROUND_FAULT_MESSAGE})

        if exc.status_code >= 500:
            logger.error(f"Server error: {exc.detail}", extra={"status_code": exc.status_code})
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        if exc.status_code >= 500:
            logger.error(f"Server error: {exc.detail}", extra={"status_code": exc.status_code})

        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers,
        )


# ============================================================================
# ROUTES
# ============================================================================

def _register_routes(app: FastAPI) -> None:

    @app.get("/health")
    def health():
        """Basic health check for load balancers. Returns minimal information."""
        return {"status": "healthy"}

    @app.get("/targets", response_model=list[TargetOut])
    def list_targets(registry: EntityRegistry = Depends(get_registry)):
        return [TargetOut.from_target(t) for t in registry]

    # Declared before /targets/{target_id} so "nearby" is not taken as an id
    @app.get("/targets/nearby", response_model=list[NearbyTargetOut])
    def nearby_targets(
        lat: float,
        lng: float,
        radius_km: float | None = Query(default=None, ge=0),
        category: str | None = None,
        service: DispatchService = Depends(get_service),
    ):
        point = GeoPoint(lat=lat, lng=lng)
        category_filter = IssueCategory.parse(category) if category else None
        nearby = service.nearby(point, radius_km=radius_km, category=category_filter)
        return [NearbyTargetOut.from_nearby(n) for n in nearby]

    @app.get("/targets/{target_id}", response_model=TargetOut)
    def get_target(target_id: str, registry: EntityRegistry = Depends(get_registry)):
        target = registry.get(target_id)
        if target is None:
            raise TargetNotFoundError(f"Unknown dispatch target: {target_id}")
        return TargetOut.from_target(target)

    @app.post("/issues/{issue_id}/dispatch", response_model=DispatchOut)
    async def dispatch_issue(
        issue_id: str,
        payload: IssueIn,
        service: DispatchService = Depends(get_service),
    ):
        """
        Submit the issue to every municipal authority near the reporter.

        Always 200 when the round ran, including when nothing was in range
        or every delivery failed: ``status`` and ``summary`` tell them apart.
        """
        request = payload.to_request(issue_id)
        report = await service.dispatch_issue(
            request,
            payload.resolution_point(),
            radius_km=payload.radius_km,
            category=payload.category_filter(),
        )
        result = report.result
        return DispatchOut(
            issue_id=issue_id,
            round_id=result.round_id,
            status=result.status.value,
            aggregate_success=result.aggregate_success,
            succeeded=result.succeeded_count,
            total=result.total,
            summary=report.summary,
            outcomes=[OutcomeOut.from_outcome(o) for o in result.outcomes],
            targets=[NearbyTargetOut.from_nearby(n) for n in report.targets],
        )

    @app.get("/issues/{issue_id}/submissions", response_model=SubmissionsOut)
    def issue_submissions(issue_id: str, service: DispatchService = Depends(get_service)):
        ledger = service.ledger
        return SubmissionsOut(
            issue_id=issue_id,
            current=SubmissionRecordOut.from_record(ledger.current_record(issue_id)),
            history=[SubmissionRecordOut.from_record(r) for r in ledger.history(issue_id)],
        )

    @app.post("/issues/{issue_id}/drafts", response_model=DraftsOut)
    def issue_drafts(
        issue_id: str,
        payload: IssueIn,
        service: DispatchService = Depends(get_service),
    ):
        """Pre-filled email drafts (mailto URL + plain text) for manual sending."""
        drafts = service.compose_drafts(
            payload.to_request(issue_id),
            payload.resolution_point(),
            radius_km=payload.radius_km,
            category=payload.category_filter(),
        )
        return DraftsOut(
            issue_id=issue_id,
            drafts=[DraftOut.from_composed(t, m) for t, m in drafts],
            text=drafts_as_text(drafts),
        )

    @app.get("/metrics")
    def metrics(request: Request):
        """In-process counters and histograms."""
        if not request.app.state.settings.enable_metrics:
            raise HTTPException(status_code=404, detail="Not found")
        return get_metrics_collector().get_metrics()


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "civic_dispatch.transport.http_app:app",
        host="0.0.0.0",
        port=8099,
        reload=not default_settings.is_production,
        log_level=default_settings.log_level.lower(),
        access_log=not default_settings.is_production,  # Middleware logs requests in prod
        server_header=False,
        date_header=False,
    )
