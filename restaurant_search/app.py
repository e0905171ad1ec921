from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from .analytics.aggregator import compute_analytics, health_status
from .provider.groq_client import GroqSearchProvider
from .search.errors import InvalidSearchContext, SearchUnavailableError
from .search.models import ErrorResponse, SearchRequest, SearchResponse
from .search.orchestrator import SearchOrchestrator


def create_app(orchestrator: SearchOrchestrator | None = None) -> FastAPI:
    """Build the API around *orchestrator*, or a Groq-backed one by default."""
    if orchestrator is None:
        orchestrator = SearchOrchestrator(GroqSearchProvider())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        orchestrator.start()
        try:
            yield
        finally:
            await orchestrator.aclose()

    app = FastAPI(title="Restaurant Search API", version="1.0.0", lifespan=lifespan)
    app.state.orchestrator = orchestrator

    @app.exception_handler(InvalidSearchContext)
    async def invalid_context_handler(request: Request, exc: InvalidSearchContext) -> JSONResponse:
        body = ErrorResponse(
            error="Location data is required",
            suggestions=[*exc.issues, "Provide coordinates or a city name"][:3],
            can_retry=False,
        )
        return JSONResponse(status_code=400, content=body.model_dump(by_alias=True))

    @app.exception_handler(SearchUnavailableError)
    async def unavailable_handler(request: Request, exc: SearchUnavailableError) -> JSONResponse:
        body = ErrorResponse.model_validate(exc.body)
        return JSONResponse(status_code=503, content=body.model_dump(by_alias=True))

    # ── Public endpoints ─────────────────────────────────────────────────

    @app.get("/health")
    def health(orch: SearchOrchestrator = Depends(get_orchestrator)) -> dict[str, str]:
        return {"status": health_status(orch.events.get_events())}

    @app.post(
        "/restaurants/search",
        response_model=SearchResponse,
        response_model_by_alias=True,
        responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    )
    async def search_restaurants(
        body: SearchRequest,
        orch: SearchOrchestrator = Depends(get_orchestrator),
    ) -> SearchResponse:
        return await orch.search(body)

    # ── Operations endpoints ─────────────────────────────────────────────

    @app.get("/cache/stats")
    def cache_stats(orch: SearchOrchestrator = Depends(get_orchestrator)) -> dict:
        return {
            "primary": orch.cache.stats().as_dict(),
            "fallback": orch.fallback_cache.stats().as_dict(),
        }

    @app.get("/analytics")
    def analytics(orch: SearchOrchestrator = Depends(get_orchestrator)) -> dict:
        return compute_analytics(orch.events.get_events())

    return app


def get_orchestrator(request: Request) -> SearchOrchestrator:
    return request.app.state.orchestrator


app = create_app()
