"""
RareMD Assist API - Rare Disease Diagnostic Support

A physician support API that ranks rare genetic diseases against a
patient's HPO-coded phenotypes.

This API provides:
- Deterministic phenotype-to-disease ranking with priority tiers
- HPO term search and an Orphadata-backed disease knowledge base
- Patient case tracking with dashboard analytics
- Referral report generation and physician profiles
- Practice cases for training
"""

import time
from contextlib import asynccontextmanager
from uuid import uuid4

import httpx
from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from raremd.config.config import Settings, get_settings
from raremd.config.logging_config import configure_logging, get_logger, log_request_context
from raremd.database.database import close_connection
from raremd.database.repository import (
    DuplicateDiseaseError,
    RecordNotFoundError,
    Repository,
    build_repository,
)
from raremd.models.clinical_models import Disease, DiseaseCreate, HpoTerm, ScoredMatch
from raremd.models.models import (
    AnalyzeRequest,
    ErrorResponse,
    HealthResponse,
    HealthStatus,
    ReferralRequest,
    SyncResponse,
)
from raremd.models.record_models import (
    Analytics,
    CaseCreate,
    CaseUpdate,
    Difficulty,
    PatientCase,
    Physician,
    PhysicianCreate,
    PhysicianUpdate,
    PracticeCase,
    ReferralDocument,
)
from raremd.services.knowledge_base import KnowledgeBaseService
from raremd.services.orphadata import OrphadataClient
from raremd.services.phenotype_catalog import PhenotypeCatalog
from raremd.services.referral import ReferralRenderer
from raremd.services.test_cases import PracticeCaseLibrary

# Logging first, so import-time events are formatted
configure_logging()
logger = get_logger(__name__)

MIN_SEARCH_QUERY_LENGTH = 2


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup and shutdown for the RareMD app.

    Connects storage, loads the phenotype catalog and seeds the knowledge
    base on startup; closes the database connection on shutdown.
    """
    settings: Settings = app.state.settings

    logger.info(
        "Application starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        config=settings.get_safe_config_dict(),
    )

    if app.state.repository is None:
        app.state.repository = build_repository(settings)
    app.state.knowledge_base = KnowledgeBaseService(app.state.repository, app.state.orphadata)

    await app.state.catalog.load()
    if settings.seed_knowledge_base:
        await app.state.knowledge_base.sync_from_orphadata()

    yield

    if settings.storage_backend == "arango":
        close_connection()
    logger.info("Application shutting down")


def create_app(
    settings: Settings | None = None,
    repository: Repository | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """
    Build the RareMD FastAPI app.

    Args:
        settings: Settings to use instead of the cached environment settings.
        repository: Optional storage adapter. Built from settings on startup when omitted.
        transport: Optional httpx transport for the outbound HPO and Orphadata clients.

    Returns:
        The RareMD FastAPI app.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=__doc__,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.state.settings = settings
    app.state.repository = repository
    app.state.catalog = PhenotypeCatalog(settings, transport=transport)
    app.state.orphadata = OrphadataClient(settings, transport=transport)
    app.state.referrals = ReferralRenderer(settings)
    app.state.practice_cases = PracticeCaseLibrary()

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request id and timing
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Assign a request id, time the call and log its outcome."""
        request_id = str(uuid4())
        request.state.request_id = request_id
        request.state.started_at = time.perf_counter()

        # Every log line in this request carries these fields
        log_request_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        response = await call_next(request)
        processing_time = set_tracing_headers(request, response)

        logger.info(
            "Request completed",
            status_code=response.status_code,
            processing_time_ms=processing_time,
        )

        return response

    # Exception handlers
    def error_response(request: Request, status_code: int, error: str, message: str,
                       details: dict | None = None) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(
                error=error,
                message=message,
                details=details,
                request_id=getattr(request.state, "request_id", None),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Wrap Starlette HTTP errors in the ErrorResponse body."""
        return error_response(request, exc.status_code, f"HTTP_{exc.status_code}", str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Reject malformed payloads with 400 before they reach the services."""
        logger.info("Request validation failed", error_count=len(exc.errors()))
        return error_response(
            request,
            400,
            "VALIDATION_ERROR",
            "Invalid request data",
            details={"errors": jsonable_errors(exc)},
        )

    @app.exception_handler(RecordNotFoundError)
    async def not_found_handler(request: Request, exc: RecordNotFoundError):
        return error_response(request, 404, "NOT_FOUND", str(exc))

    @app.exception_handler(DuplicateDiseaseError)
    async def duplicate_disease_handler(request: Request, exc: DuplicateDiseaseError):
        return error_response(
            request, 409, "DUPLICATE_DISEASE", str(exc), details={"orphaCode": exc.orpha_code}
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Last-resort handler: log the traceback and return a generic 500."""
        logger.exception("Unhandled exception", error=str(exc))
        response = error_response(request, 500, "INTERNAL_ERROR", "An unexpected error occurred")
        # The middleware never sees this response
        set_tracing_headers(request, response)
        return response

    # Register routes
    register_routes(app)

    return app


def set_tracing_headers(request: Request, response: Response) -> int | None:
    """Copy the request id and elapsed milliseconds onto the response."""
    request_id = getattr(request.state, "request_id", None)
    started_at = getattr(request.state, "started_at", None)
    if request_id is None or started_at is None:
        return None
    processing_time = int((time.perf_counter() - started_at) * 1000)
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Processing-Time-Ms"] = str(processing_time)
    return processing_time


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Validation errors reduced to JSON-safe location/message/type triples."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


# ============================================================================
# Dependencies
# ============================================================================

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_repository(request: Request) -> Repository:
    return request.app.state.repository


def get_knowledge_base(request: Request) -> KnowledgeBaseService:
    return request.app.state.knowledge_base


def get_catalog(request: Request) -> PhenotypeCatalog:
    return request.app.state.catalog


def get_referral_renderer(request: Request) -> ReferralRenderer:
    return request.app.state.referrals


def get_practice_cases(request: Request) -> PracticeCaseLibrary:
    return request.app.state.practice_cases


def register_routes(app: FastAPI) -> None:
    """Attach the RareMD endpoints to the app."""

    @app.get("/", tags=["Root"])
    async def root(settings: Settings = Depends(get_app_settings)):
        """Service name, version and docs location."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "status": "operational",
            "docs": "/docs" if settings.debug else "disabled",
        }

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(
        settings: Settings = Depends(get_app_settings),
        repository: Repository = Depends(get_repository),
        catalog: PhenotypeCatalog = Depends(get_catalog),
    ) -> HealthResponse:
        """
        Report storage and HPO catalog status.

        Returns system health status and component checks. A missing
        Orphadata key is reported but does not degrade the status.
        """
        checks = {
            "api": True,
            "storage": repository.is_available(),
            "hpo_catalog": len(catalog) > 0,
            "orphadata_configured": bool(settings.orphadata_api_key),
        }

        required = ("api", "storage", "hpo_catalog")
        if all(checks[name] for name in required):
            status = HealthStatus.HEALTHY
        elif checks["api"]:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.UNHEALTHY

        return HealthResponse(
            status=status,
            version=settings.app_version,
            environment=settings.environment,
            checks=checks,
        )

    # ------------------------------------------------------------------
    # Analytics and cases
    # ------------------------------------------------------------------

    @app.get("/api/v1/analytics", response_model=Analytics, tags=["Cases"])
    async def get_analytics(repository: Repository = Depends(get_repository)) -> Analytics:
        return repository.get_analytics()

    @app.get("/api/v1/cases", response_model=list[PatientCase], tags=["Cases"])
    async def list_cases(repository: Repository = Depends(get_repository)) -> list[PatientCase]:
        """List all cases, newest first."""
        return repository.list_cases()

    @app.get("/api/v1/cases/{case_id}", response_model=PatientCase, tags=["Cases"])
    async def get_case(case_id: int, repository: Repository = Depends(get_repository)) -> PatientCase:
        case = repository.get_case(case_id)
        if case is None:
            raise HTTPException(status_code=404, detail="Case not found")
        return case

    @app.post("/api/v1/cases", response_model=PatientCase, status_code=201, tags=["Cases"])
    async def create_case(
        data: CaseCreate, repository: Repository = Depends(get_repository)
    ) -> PatientCase:
        case = repository.create_case(data)
        logger.info("Case created", case_id=case.id, status=case.status.value)
        return case

    @app.put("/api/v1/cases/{case_id}", response_model=PatientCase, tags=["Cases"])
    async def update_case(
        case_id: int, data: CaseUpdate, repository: Repository = Depends(get_repository)
    ) -> PatientCase:
        """Apply a partial update. Only fields present in the body change."""
        case = repository.update_case(case_id, data)
        if case is None:
            raise HTTPException(status_code=404, detail="Case not found")
        return case

    @app.delete("/api/v1/cases/{case_id}", status_code=204, tags=["Cases"])
    async def delete_case(case_id: int, repository: Repository = Depends(get_repository)) -> Response:
        if not repository.delete_case(case_id):
            raise HTTPException(status_code=404, detail="Case not found")
        return Response(status_code=204)

    # ------------------------------------------------------------------
    # Knowledge base
    # ------------------------------------------------------------------

    @app.get("/api/v1/diseases", response_model=list[Disease], tags=["Knowledge Base"])
    async def list_diseases(kb: KnowledgeBaseService = Depends(get_knowledge_base)) -> list[Disease]:
        return kb.get_all_diseases()

    @app.get("/api/v1/diseases/{orpha_code}", response_model=Disease, tags=["Knowledge Base"])
    async def get_disease(
        orpha_code: str, kb: KnowledgeBaseService = Depends(get_knowledge_base)
    ) -> Disease:
        disease = kb.get_disease_by_code(orpha_code)
        if disease is None:
            raise HTTPException(status_code=404, detail="Disease not found")
        return disease

    @app.post("/api/v1/diseases", response_model=Disease, status_code=201, tags=["Knowledge Base"])
    async def create_disease(
        data: DiseaseCreate, kb: KnowledgeBaseService = Depends(get_knowledge_base)
    ) -> Disease:
        """Add a disease. A duplicate ORPHA code is rejected with 409."""
        return kb.create_disease(data)

    @app.post("/api/v1/sync-orphadata", response_model=SyncResponse, tags=["Knowledge Base"])
    async def sync_orphadata(kb: KnowledgeBaseService = Depends(get_knowledge_base)) -> SyncResponse:
        """Insert Orphadata diseases missing from the knowledge base."""
        synced = await kb.sync_from_orphadata()
        return SyncResponse(synced=synced, message=f"Synced {synced} diseases from Orphadata")

    # ------------------------------------------------------------------
    # Phenotype catalog
    # ------------------------------------------------------------------

    @app.get("/api/v1/hpo/search", response_model=list[HpoTerm], tags=["HPO"])
    async def search_hpo(
        q: str = Query(default="", description="Label, id or synonym fragment"),
        catalog: PhenotypeCatalog = Depends(get_catalog),
    ) -> list[HpoTerm]:
        """Search HPO terms. Queries shorter than two characters return nothing."""
        if len(q) < MIN_SEARCH_QUERY_LENGTH:
            return []
        return catalog.search(q)

    @app.get("/api/v1/hpo/{hpo_id}", response_model=HpoTerm, tags=["HPO"])
    async def get_hpo_term(hpo_id: str, catalog: PhenotypeCatalog = Depends(get_catalog)) -> HpoTerm:
        term = catalog.get_by_id(hpo_id)
        if term is None:
            raise HTTPException(status_code=404, detail="HPO term not found")
        return term

    # ------------------------------------------------------------------
    # Ranking
    # ------------------------------------------------------------------

    @app.post("/api/v1/analyze", response_model=list[ScoredMatch], tags=["Analysis"])
    async def analyze(
        payload: AnalyzeRequest, kb: KnowledgeBaseService = Depends(get_knowledge_base)
    ) -> list[ScoredMatch]:
        """
        Rank the knowledge base against the patient's phenotypes.

        Returns at most ten candidates, highest score first, with
        zero-score diseases omitted.
        """
        return kb.rank(payload.symptoms)

    # ------------------------------------------------------------------
    # Referrals
    # ------------------------------------------------------------------

    def build_referral(
        payload: ReferralRequest,
        repository: Repository,
        renderer: ReferralRenderer,
    ) -> ReferralDocument:
        case = repository.get_case(payload.case_id)
        if case is None:
            raise RecordNotFoundError(f"Case {payload.case_id} not found")

        physician = None
        if payload.physician_id is not None:
            physician = repository.get_physician(payload.physician_id)
            if physician is None:
                raise RecordNotFoundError(f"Physician {payload.physician_id} not found")

        disease = repository.get_disease_by_code(case.orpha_code) if case.orpha_code else None
        return renderer.build(case, disease=disease, physician=physician)

    @app.post("/api/v1/referrals", response_class=HTMLResponse, tags=["Referrals"])
    async def generate_referral(
        payload: ReferralRequest,
        repository: Repository = Depends(get_repository),
        renderer: ReferralRenderer = Depends(get_referral_renderer),
    ) -> HTMLResponse:
        """Render the referral report for a case as HTML."""
        document = build_referral(payload, repository, renderer)
        return HTMLResponse(
            content=renderer.render_html(document),
            headers={"Content-Disposition": 'inline; filename="referral-report.html"'},
        )

    @app.post("/api/v1/referrals/content", response_model=ReferralDocument, tags=["Referrals"])
    async def generate_referral_content(
        payload: ReferralRequest,
        repository: Repository = Depends(get_repository),
        renderer: ReferralRenderer = Depends(get_referral_renderer),
    ) -> ReferralDocument:
        """Return the structured referral content for a case."""
        return build_referral(payload, repository, renderer)

    # ------------------------------------------------------------------
    # Practice cases
    # ------------------------------------------------------------------

    @app.get("/api/v1/test-cases", response_model=list[PracticeCase], tags=["Practice Cases"])
    async def list_practice_cases(
        library: PracticeCaseLibrary = Depends(get_practice_cases),
    ) -> list[PracticeCase]:
        return library.get_all()

    # Registered before /{case_id} so that "random" is not taken as an id
    @app.get("/api/v1/test-cases/random", response_model=PracticeCase, tags=["Practice Cases"])
    async def random_practice_case(
        library: PracticeCaseLibrary = Depends(get_practice_cases),
    ) -> PracticeCase:
        case = library.get_random()
        if case is None:
            raise HTTPException(status_code=404, detail="No practice cases available")
        return case

    @app.get(
        "/api/v1/test-cases/difficulty/{difficulty}",
        response_model=list[PracticeCase],
        tags=["Practice Cases"],
    )
    async def practice_cases_by_difficulty(
        difficulty: Difficulty,
        library: PracticeCaseLibrary = Depends(get_practice_cases),
    ) -> list[PracticeCase]:
        return library.get_by_difficulty(difficulty)

    @app.get("/api/v1/test-cases/{case_id}", response_model=PracticeCase, tags=["Practice Cases"])
    async def get_practice_case(
        case_id: str, library: PracticeCaseLibrary = Depends(get_practice_cases)
    ) -> PracticeCase:
        case = library.get_by_id(case_id)
        if case is None:
            raise HTTPException(status_code=404, detail="Test case not found")
        return case

    # ------------------------------------------------------------------
    # Physician profiles
    # ------------------------------------------------------------------

    @app.get("/api/v1/physicians", response_model=list[Physician], tags=["Physicians"])
    async def list_physicians(repository: Repository = Depends(get_repository)) -> list[Physician]:
        return repository.list_physicians()

    @app.get("/api/v1/physicians/by-user/{user_id}", response_model=Physician, tags=["Physicians"])
    async def get_physician_by_user(
        user_id: str, repository: Repository = Depends(get_repository)
    ) -> Physician:
        physician = repository.get_physician_by_user_id(user_id)
        if physician is None:
            raise HTTPException(status_code=404, detail="Physician profile not found")
        return physician

    @app.post("/api/v1/physicians", response_model=Physician, status_code=201, tags=["Physicians"])
    async def create_physician(
        data: PhysicianCreate, repository: Repository = Depends(get_repository)
    ) -> Physician:
        return repository.create_physician(data)

    @app.put("/api/v1/physicians/{physician_id}", response_model=Physician, tags=["Physicians"])
    async def update_physician(
        physician_id: int, data: PhysicianUpdate, repository: Repository = Depends(get_repository)
    ) -> Physician:
        physician = repository.update_physician(physician_id, data)
        if physician is None:
            raise HTTPException(status_code=404, detail="Physician profile not found")
        return physician


# ASGI entry point for uvicorn raremd.main:app
app = create_app()


def run() -> None:
    """Serve the API with uvicorn using the configured host and port."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "raremd.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
