from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import threading
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from jobboard.utils import now_utc_iso
from pydantic import BaseModel, Field

from matchmaker.ai import (
    DEFAULT_AI_BASE_URL,
    DEFAULT_AI_MODEL,
    DEFAULT_AI_TIMEOUT_SECONDS,
    AIRecommender,
    CandidateAnalysis,
    JobPostingAnalysis,
    JobPostingDraft,
    OpenAITextGenerator,
    TextGenerator,
)
from matchmaker.errors import AIError, PreconditionError
from matchmaker.models import (
    EducationEntry,
    Engine,
    ExperienceEntry,
    JobPosting,
    JobStatus,
    MessageCode,
    Recommendation,
    RecommendationResult,
    SeekerProfile,
)
from matchmaker.orchestrator import (
    DEFAULT_AI_COOLDOWN_SECONDS,
    AIFailureState,
    Clock,
    RecommendationOrchestrator,
)
from matchmaker.repository import Application, MatchmakerRepository, WishlistItem

DEFAULT_DB_PATH = os.path.join(tempfile.gettempdir(), "jobboard", "matchmaker.sqlite3")
LOGGER = logging.getLogger("jobboard.matchmaker")

USER_MESSAGES: dict[MessageCode, str] = {
    MessageCode.NO_JOBS_AVAILABLE: (
        "You've already applied to or saved all available jobs! "
        "Check back later for new opportunities."
    ),
    MessageCode.NO_SUITABLE_JOBS: (
        "No suitable jobs found matching your profile. "
        "Try updating your skills or check all available jobs."
    ),
    MessageCode.PROFILE_NOT_FOUND: "Please complete your profile to get job recommendations",
    MessageCode.PROFILE_INCOMPLETE: (
        "Please add skills, experience, or location to your profile "
        "to get personalized recommendations"
    ),
    MessageCode.ERROR: "Unable to load recommendations at the moment. Please try again.",
}


def parse_api_tokens(raw: str) -> dict[str, set[str]]:
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError("MATCHMAKER_API_TOKENS_JSON must be a JSON object.")

    token_map: dict[str, set[str]] = {}
    for token, scopes_value in parsed.items():
        if not isinstance(token, str) or not token.strip():
            raise ValueError("Token keys must be non-empty strings.")
        if isinstance(scopes_value, str):
            scopes = {scopes_value.strip()} if scopes_value.strip() else set()
        elif isinstance(scopes_value, list):
            scopes = {
                scope.strip() for scope in scopes_value if isinstance(scope, str) and scope.strip()
            }
        else:
            raise ValueError("Token scopes must be a string or list of strings.")
        token_map[token] = scopes
    return token_map


def build_auth_subject(token: str) -> str:
    token_digest = hashlib.sha1(token.encode()).hexdigest()[:12]
    return f"token:{token_digest}"


def describe_outcome(code: MessageCode, count: int) -> str:
    if code == MessageCode.SUCCESS:
        return f"Found {count} job recommendations based on your profile"
    return USER_MESSAGES[code]


class SeekerProfileUpsertRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64, pattern=r"^[a-zA-Z0-9_-]+$")
    full_name: str = Field(default="", max_length=120)
    location: str = ""
    headline: str = ""
    bio: str = ""
    skills: list[str] = Field(default_factory=list)
    experience: list[ExperienceEntry] = Field(default_factory=list)
    education: list[EducationEntry] = Field(default_factory=list)

    def to_profile(self) -> SeekerProfile:
        return SeekerProfile(**self.model_dump())


class UpsertPostingsRequest(BaseModel):
    postings: list[JobPosting] = Field(default_factory=list)


class UpsertPostingsResponse(BaseModel):
    updated: int


class JobActionRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    job_id: str = Field(..., min_length=1)


class RecommendationsResponse(BaseModel):
    recommendations: list[Recommendation]
    count: int
    message: str
    message_code: MessageCode
    engine: Engine | None = None


class AIFeatures(BaseModel):
    job_recommendations: bool = True
    job_analysis: bool
    candidate_analysis: bool


class AIStatusResponse(BaseModel):
    available: bool
    cooling_down: bool
    features: AIFeatures
    message: str


class JobAnalysisResponse(BaseModel):
    analysis: JobPostingAnalysis
    ai_enabled: bool = True
    message: str = "AI analysis completed successfully"


class CandidateSummary(BaseModel):
    user_id: str
    name: str


class JobSummary(BaseModel):
    id: str
    title: str


class CandidateAnalysisResponse(BaseModel):
    analysis: CandidateAnalysis
    ai_enabled: bool = True
    applicant: CandidateSummary
    job: JobSummary
    message: str = "AI analysis completed successfully"


class MetricsSnapshot(BaseModel):
    generated_at: str
    totals: dict[str, int]
    endpoints: dict[str, dict[str, float | int]]


class MetricsStore:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._totals = {"requests": 0, "errors": 0}
        self._endpoints: dict[str, dict[str, float | int]] = {}

    def observe(self, *, method: str, path: str, status_code: int, duration_ms: float) -> None:
        key = f"{method} {path}"
        bucket = f"{status_code // 100}xx"
        with self._lock:
            self._totals["requests"] += 1
            if status_code >= 400:
                self._totals["errors"] += 1
            endpoint = self._endpoints.setdefault(
                key,
                {
                    "count": 0,
                    "2xx": 0,
                    "4xx": 0,
                    "5xx": 0,
                    "latency_ms_sum": 0.0,
                    "latency_ms_avg": 0.0,
                },
            )
            endpoint["count"] = int(endpoint["count"]) + 1
            if bucket in endpoint:
                endpoint[bucket] = int(endpoint[bucket]) + 1
            endpoint["latency_ms_sum"] = float(endpoint["latency_ms_sum"]) + duration_ms
            endpoint["latency_ms_avg"] = float(endpoint["latency_ms_sum"]) / int(endpoint["count"])

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                generated_at=now_utc_iso(),
                totals=dict(self._totals),
                endpoints={key: dict(value) for key, value in self._endpoints.items()},
            )


def build_recommendations_response(result: RecommendationResult) -> RecommendationsResponse:
    count = len(result.recommendations)
    return RecommendationsResponse(
        recommendations=result.recommendations,
        count=count,
        message=describe_outcome(result.message, count),
        message_code=result.message,
        engine=result.engine,
    )


def build_text_generator(ai_api_key: str | None) -> TextGenerator | None:
    resolved_key = (
        ai_api_key
        or os.getenv("MATCHMAKER_AI_API_KEY", "")
        or os.getenv("GEMINI_API_KEY", "")
    ).strip()
    if not resolved_key:
        return None
    return OpenAITextGenerator(
        api_key=resolved_key,
        model=os.getenv("MATCHMAKER_AI_MODEL", "").strip() or DEFAULT_AI_MODEL,
        base_url=os.getenv("MATCHMAKER_AI_BASE_URL", "").strip() or DEFAULT_AI_BASE_URL,
        timeout_seconds=float(
            os.getenv("MATCHMAKER_AI_TIMEOUT_SECONDS", DEFAULT_AI_TIMEOUT_SECONDS)
        ),
    )


def create_app(
    *,
    database_path: str | None = None,
    api_key: str | None = None,
    api_tokens: dict[str, list[str] | set[str]] | None = None,
    ai_api_key: str | None = None,
    text_generator: TextGenerator | None = None,
    failure_state: AIFailureState | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    resolved_path = database_path or os.getenv("MATCHMAKER_DB_PATH", DEFAULT_DB_PATH)
    resolved_api_key = (api_key or os.getenv("MATCHMAKER_API_KEY", "")).strip() or None
    resolved_token_map: dict[str, set[str]] = {}
    if api_tokens is not None:
        resolved_token_map = {
            token: {str(scope).strip() for scope in scopes if str(scope).strip()}
            for token, scopes in api_tokens.items()
            if token.strip()
        }
    else:
        raw_tokens = os.getenv("MATCHMAKER_API_TOKENS_JSON", "").strip()
        if raw_tokens:
            resolved_token_map = parse_api_tokens(raw_tokens)

    if resolved_api_key:
        resolved_token_map.setdefault(resolved_api_key, set()).add("*")

    clock_kwargs = {"clock": clock} if clock is not None else {}
    timeout_seconds = float(os.getenv("MATCHMAKER_AI_TIMEOUT_SECONDS", DEFAULT_AI_TIMEOUT_SECONDS))
    ai_recommender = AIRecommender(
        text_generator or build_text_generator(ai_api_key),
        timeout_seconds=timeout_seconds,
    )
    resolved_failure_state = failure_state or AIFailureState(
        cooldown_seconds=float(
            os.getenv("MATCHMAKER_AI_COOLDOWN_SECONDS", DEFAULT_AI_COOLDOWN_SECONDS)
        ),
        **clock_kwargs,
    )
    repository = MatchmakerRepository(database_path=resolved_path)
    orchestrator = RecommendationOrchestrator(
        repository,
        ai_recommender=ai_recommender,
        failure_state=resolved_failure_state,
        **clock_kwargs,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await run_in_threadpool(repository.connect)
        app.state.repository = repository
        app.state.orchestrator = orchestrator
        app.state.ai_recommender = ai_recommender
        app.state.auth_token_scopes = resolved_token_map
        app.state.metrics = MetricsStore()
        try:
            yield
        finally:
            await run_in_threadpool(repository.close)

    app = FastAPI(title="JobBoard Matchmaker", version="0.3.0", lifespan=lifespan)

    def log_request(
        request: Request,
        status_code: int,
        started: float,
        error: str | None = None,
    ) -> None:
        duration_ms = (time.perf_counter() - started) * 1000
        request.app.state.metrics.observe(
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            duration_ms=duration_ms,
        )
        event = {
            "event": "request_complete",
            "request_id": request.state.request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "duration_ms": round(duration_ms, 3),
        }
        if error is None:
            event["source_ip"] = request.client.host if request.client else None
            LOGGER.info(json.dumps(event))
        else:
            event["error"] = error
            LOGGER.exception(json.dumps(event))

    @app.middleware("http")
    async def observability_middleware(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            log_request(request, 500, started, error=str(exc))
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal Server Error", "request_id": request_id},
                headers={"x-request-id": request_id},
            )

        log_request(request, response.status_code, started)
        response.headers["x-request-id"] = request_id
        return response

    def require_scope(request: Request, *, action: str, scope: str) -> str | None:
        token_map: dict[str, set[str]] = request.app.state.auth_token_scopes
        if not token_map:
            return None

        provided = request.headers.get("x-api-key", "")
        scopes = token_map.get(provided) if provided else None
        if scopes is None:
            LOGGER.warning(
                json.dumps(
                    {"event": "auth_denied", "action": action, "scope": scope, "status": 401}
                )
            )
            raise HTTPException(status_code=401, detail="Unauthorized")

        auth_subject = build_auth_subject(provided)
        if "*" not in scopes and scope not in scopes:
            LOGGER.warning(
                json.dumps(
                    {
                        "event": "auth_denied",
                        "action": action,
                        "scope": scope,
                        "status": 403,
                        "auth_subject": auth_subject,
                    }
                )
            )
            raise HTTPException(status_code=403, detail="Forbidden")
        return auth_subject

    def require_ai(request: Request) -> AIRecommender:
        recommender: AIRecommender = request.app.state.ai_recommender
        if not recommender.available:
            raise HTTPException(
                status_code=503,
                detail="AI analysis is not available. Configure an AI provider API key.",
            )
        return recommender

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "matchmaker"}

    @app.get("/metrics", response_model=MetricsSnapshot)
    async def metrics(request: Request) -> MetricsSnapshot:
        return request.app.state.metrics.snapshot()

    @app.get("/ai-status", response_model=AIStatusResponse)
    async def ai_status(request: Request) -> AIStatusResponse:
        available = request.app.state.ai_recommender.available
        cooling_down = available and request.app.state.orchestrator.failure_state.should_skip()
        if not available:
            message = (
                "AI features are limited. "
                "Configure an AI provider API key for full functionality."
            )
        elif cooling_down:
            message = (
                "AI provider failed recently; "
                "recommendations use the built-in matcher for now."
            )
        else:
            message = "AI features are fully available"
        return AIStatusResponse(
            available=available,
            cooling_down=cooling_down,
            features=AIFeatures(job_analysis=available, candidate_analysis=available),
            message=message,
        )

    @app.post("/profiles", response_model=SeekerProfile)
    async def upsert_profile(
        payload: SeekerProfileUpsertRequest,
        request: Request,
    ) -> SeekerProfile:
        auth_subject = require_scope(request, action="profile_upsert", scope="profiles:write")
        profile = await run_in_threadpool(
            request.app.state.repository.upsert_seeker_profile,
            payload.to_profile(),
        )
        LOGGER.info(
            json.dumps(
                {
                    "event": "profile_upsert",
                    "user_id": profile.user_id,
                    "auth_subject": auth_subject,
                }
            )
        )
        return profile

    @app.get("/profiles", response_model=list[SeekerProfile])
    async def list_profiles(request: Request) -> list[SeekerProfile]:
        return await run_in_threadpool(request.app.state.repository.list_seeker_profiles)

    @app.get("/profiles/{user_id}", response_model=SeekerProfile)
    async def get_profile(user_id: str, request: Request) -> SeekerProfile:
        profile = await run_in_threadpool(request.app.state.repository.find_seeker_profile, user_id)
        if profile is None:
            raise HTTPException(status_code=404, detail="Unknown user_id")
        return profile

    @app.delete("/profiles/{user_id}")
    async def delete_profile(user_id: str, request: Request) -> dict[str, bool]:
        require_scope(request, action="profile_delete", scope="profiles:write")
        deleted = await run_in_threadpool(
            request.app.state.repository.delete_seeker_profile,
            user_id,
        )
        if not deleted:
            raise HTTPException(status_code=404, detail="Unknown user_id")
        return {"deleted": True}

    @app.post("/postings", response_model=UpsertPostingsResponse)
    async def upsert_postings(
        payload: UpsertPostingsRequest,
        request: Request,
    ) -> UpsertPostingsResponse:
        auth_subject = require_scope(request, action="postings_upsert", scope="postings:write")
        updated = await run_in_threadpool(
            request.app.state.repository.upsert_postings,
            payload.postings,
        )
        LOGGER.info(
            json.dumps(
                {"event": "postings_upsert", "updated": updated, "auth_subject": auth_subject}
            )
        )
        return UpsertPostingsResponse(updated=updated)

    @app.get("/postings", response_model=list[JobPosting])
    async def list_postings(
        request: Request,
        limit: int = Query(default=100, ge=1, le=500),
        status: JobStatus | None = None,
    ) -> list[JobPosting]:
        return await run_in_threadpool(request.app.state.repository.list_postings, limit, status)

    @app.post("/postings/analysis", response_model=JobAnalysisResponse)
    async def analyze_posting(payload: JobPostingDraft, request: Request) -> JobAnalysisResponse:
        require_scope(request, action="posting_analysis", scope="analysis:run")
        recommender = require_ai(request)
        try:
            analysis = await recommender.analyze_job_posting(payload)
        except AIError as exc:
            LOGGER.warning(json.dumps({"event": "posting_analysis_failed", "error": str(exc)}))
            raise HTTPException(status_code=502, detail="AI provider request failed") from exc
        return JobAnalysisResponse(analysis=analysis)

    async def require_posting(request: Request, job_id: str) -> JobPosting:
        posting = await run_in_threadpool(request.app.state.repository.get_posting, job_id)
        if posting is None:
            raise HTTPException(status_code=404, detail="Unknown job_id")
        return posting

    @app.post("/applications", response_model=Application)
    async def create_application(payload: JobActionRequest, request: Request) -> Application:
        require_scope(request, action="application_create", scope="applications:write")
        await require_posting(request, payload.job_id)
        return await run_in_threadpool(
            request.app.state.repository.create_application,
            payload.user_id,
            payload.job_id,
        )

    @app.get("/applications/{application_id}", response_model=Application)
    async def get_application(application_id: int, request: Request) -> Application:
        application = await run_in_threadpool(
            request.app.state.repository.get_application,
            application_id,
        )
        if application is None:
            raise HTTPException(status_code=404, detail="Unknown application_id")
        return application

    @app.get("/applications/{application_id}/analysis", response_model=CandidateAnalysisResponse)
    async def analyze_application(
        application_id: int,
        request: Request,
    ) -> CandidateAnalysisResponse:
        require_scope(request, action="candidate_analysis", scope="analysis:run")
        recommender = require_ai(request)
        repository: MatchmakerRepository = request.app.state.repository
        application = await run_in_threadpool(repository.get_application, application_id)
        if application is None:
            raise HTTPException(status_code=404, detail="Unknown application_id")
        profile = await run_in_threadpool(repository.find_seeker_profile, application.user_id)
        if profile is None:
            raise HTTPException(status_code=404, detail="Applicant profile not found")
        posting = await require_posting(request, application.job_id)

        try:
            analysis = await recommender.analyze_candidate(profile, posting)
        except AIError as exc:
            LOGGER.warning(
                json.dumps(
                    {
                        "event": "candidate_analysis_failed",
                        "application_id": application_id,
                        "error": str(exc),
                    }
                )
            )
            raise HTTPException(status_code=502, detail="AI provider request failed") from exc
        return CandidateAnalysisResponse(
            analysis=analysis,
            applicant=CandidateSummary(
                user_id=profile.user_id,
                name=profile.full_name or profile.user_id,
            ),
            job=JobSummary(id=posting.id, title=posting.title),
        )

    @app.post("/wishlist", response_model=WishlistItem)
    async def add_to_wishlist(payload: JobActionRequest, request: Request) -> WishlistItem:
        require_scope(request, action="wishlist_add", scope="applications:write")
        await require_posting(request, payload.job_id)
        return await run_in_threadpool(
            request.app.state.repository.add_to_wishlist,
            payload.user_id,
            payload.job_id,
        )

    @app.delete("/wishlist/{user_id}/{job_id}")
    async def remove_from_wishlist(user_id: str, job_id: str, request: Request) -> dict[str, bool]:
        require_scope(request, action="wishlist_remove", scope="applications:write")
        removed = await run_in_threadpool(
            request.app.state.repository.remove_from_wishlist,
            user_id,
            job_id,
        )
        if not removed:
            raise HTTPException(status_code=404, detail="Job is not in the wishlist")
        return {"deleted": True}

    @app.get("/users/{user_id}/recommendations", response_model=RecommendationsResponse)
    async def recommendations(
        user_id: str,
        request: Request,
        limit: int = Query(default=10, ge=1, le=50),
    ) -> RecommendationsResponse:
        orchestrator: RecommendationOrchestrator = request.app.state.orchestrator
        try:
            result = await orchestrator.get_recommendations(user_id, limit)
        except PreconditionError as exc:
            LOGGER.info(
                json.dumps(
                    {"event": "recommendations_unavailable", "user_id": user_id, "code": exc.code}
                )
            )
            result = RecommendationResult(message=exc.code)
        except Exception:
            LOGGER.exception(json.dumps({"event": "recommendations_failed", "user_id": user_id}))
            result = RecommendationResult(message=MessageCode.ERROR)
        return build_recommendations_response(result)

    return app


app = create_app()
