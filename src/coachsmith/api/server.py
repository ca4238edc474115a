import json
import traceback
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from coachsmith import __version__
from coachsmith.agents import CoachOrchestrator, CoachReplyStream
from coachsmith.agents.models import Question
from coachsmith.config import Settings, get_settings
from coachsmith.errors import BadRequest, CoachError, Misconfigured, Unauthorized
from coachsmith.llm import GeminiGateway
from coachsmith.logger import LoggerManager, bind_request_id, clear_request_id, get_logger
from coachsmith.query_execution import PostgresQueryExecutor
from coachsmith.schema_intelligence import YamlSchemaProvider
from coachsmith.utils.caching import ResponseCache

from .identity import get_current_user_id
from .schemas import parse_coach_request, reply_payload

logger = get_logger(__name__)

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "X-Accel-Buffering": "no",
}


def build_orchestrator(settings: Settings) -> CoachOrchestrator:
    """Wire the coach pipeline from settings."""
    gateway = GeminiGateway(
        api_key=settings.gemini_api_key,
        default_model=settings.default_model,
        fallback_models=settings.fallback_models,
        discover=settings.discover_models,
        debug_prompts=settings.llm_debug_prompts,
    )
    return CoachOrchestrator(
        gateway=gateway,
        cache=ResponseCache(ttl_seconds=settings.cache_ttl_seconds, max_entries=settings.cache_max_entries),
        executor=PostgresQueryExecutor(settings.database_url, sslmode=settings.database_sslmode),
        schema_provider=YamlSchemaProvider(settings.schema_file),
        max_prompt_rows=settings.max_prompt_rows,
        max_prompt_chars=settings.max_prompt_chars,
        sample_rows=settings.sample_rows,
    )


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[CoachOrchestrator] = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(_application: FastAPI) -> AsyncIterator[None]:
        if not LoggerManager().configured:
            LoggerManager().setup_logging(
                level=settings.log_level,
                log_dir=settings.log_dir,
                timezone=settings.log_timezone,
                app_name=settings.app_name,
            )
        logger.info(f"[api] environment={settings.environment} ready={_application.state.orchestrator is not None}")
        yield
        logger.info("[api] shutdown complete")

    app = FastAPI(title=f"{settings.app_name} API", version=__version__, lifespan=lifespan)
    app.state.settings = settings

    if orchestrator is None and settings.gemini_api_key:
        try:
            orchestrator = build_orchestrator(settings)
        except CoachError as e:
            # the API can still answer with 500 / 503
            logger.error(f"[api] coach initialization failed: {e.message}")
    elif orchestrator is None:
        logger.error("[api] GEMINI_API_KEY is missing; the coach endpoint will answer 500")
    app.state.orchestrator = orchestrator

    # Request ID middleware
    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        rid = request.headers.get("x-request-id") or uuid4().hex
        bind_request_id(rid)
        try:
            response: Response = await call_next(request)
        finally:
            clear_request_id()
        response.headers["X-Request-ID"] = rid
        return response

    @app.exception_handler(CoachError)
    async def coach_error_handler(_request: Request, exc: CoachError) -> JSONResponse:
        content: Dict[str, Any] = {"error": exc.message}
        if exc.status_code >= 500:
            logger.error(f"[api] coach request failed: {exc.message}")
            if not settings.is_production:
                content["details"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/info")
    def info() -> Dict[str, Any]:
        coach_orchestrator: Optional[CoachOrchestrator] = app.state.orchestrator
        body: Dict[str, Any] = {
            "app": app.title,
            "version": app.version,
            "environment": settings.environment,
            "initialized": coach_orchestrator is not None,
            "database_configured": False,
        }
        if coach_orchestrator is not None:
            body["database_configured"] = bool(getattr(coach_orchestrator.nodes.executor, "configured", False))
            body["cache"] = {
                "entries": coach_orchestrator.cache.size(),
                **coach_orchestrator.cache.stats().as_dict(),
            }
        return body

    async def database_status() -> str:
        coach_orchestrator: Optional[CoachOrchestrator] = app.state.orchestrator
        if coach_orchestrator is None:
            return "not_configured"
        executor = coach_orchestrator.nodes.executor
        if not getattr(executor, "configured", False):
            return "not_configured"
        return "connected" if await executor.test_connection() else "unavailable"

    @app.get("/ready")
    async def ready() -> Dict[str, Any]:
        components = {
            "gemini_api_key": bool(settings.gemini_api_key),
            "orchestrator": app.state.orchestrator is not None,
        }
        is_ready = all(components.values())
        if not is_ready:
            # 503 with component breakdown
            raise HTTPException(status_code=503, detail={"ready": False, "components": components})
        # a missing database degrades answers but does not block them
        database = await database_status()
        if database != "connected":
            logger.warning(f"[api] ready without database: {database}")
        return {"ready": True, "components": components, "database": database}

    @app.post("/api/ai/coach")
    async def coach(request: Request, user_id: Optional[str] = Depends(get_current_user_id)) -> Response:
        if not user_id:
            raise Unauthorized()
        if not settings.gemini_api_key:
            raise Misconfigured(
                "Gemini API key not configured. Please set GEMINI_API_KEY in the service environment."
            )
        coach_orchestrator: Optional[CoachOrchestrator] = app.state.orchestrator
        if coach_orchestrator is None:
            raise Misconfigured("Coach service is not initialized")

        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise BadRequest("Request body must be valid JSON") from e
        req = parse_coach_request(body)

        question = Question(
            user_id=user_id,
            text=req.message,
            page_context=req.pageContext,
            page_data=req.pageData,
            streaming_requested=req.stream,
        )
        logger.info(
            f"[api] coach question: stream={req.stream} page_context={req.pageContext!r} chars={len(req.message)}"
        )

        if req.stream:
            outcome = await coach_orchestrator.open_answer_stream(question)
            if isinstance(outcome, CoachReplyStream):
                return StreamingResponse(
                    outcome,
                    media_type="text/plain; charset=utf-8",
                    headers=STREAM_HEADERS,
                )
            reply = outcome
        else:
            reply = await coach_orchestrator.answer(question)

        return JSONResponse(reply_payload(reply, include_debug=settings.is_development))

    return app
