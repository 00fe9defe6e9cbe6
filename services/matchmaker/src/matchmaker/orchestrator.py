from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Protocol

from fastapi.concurrency import run_in_threadpool
from jobboard.utils import utc_now

from matchmaker import heuristic
from matchmaker.ai import AIRecommender
from matchmaker.errors import AIError, AIUnavailable, ProfileIncomplete, ProfileNotFound
from matchmaker.models import (
    Engine,
    JobPosting,
    MessageCode,
    Recommendation,
    RecommendationResult,
    SeekerProfile,
)

LOGGER = logging.getLogger("jobboard.matchmaker.orchestrator")

DEFAULT_AI_COOLDOWN_SECONDS = 300.0

Clock = Callable[[], datetime]


class RecommendationStore(Protocol):
    def find_seeker_profile(self, user_id: str) -> SeekerProfile | None: ...

    def list_applied_job_ids(self, user_id: str) -> list[str]: ...

    def list_wishlisted_job_ids(self, user_id: str) -> list[str]: ...

    def find_open_jobs_excluding(self, excluded_ids: set[str]) -> list[JobPosting]: ...


class AIFailureState:
    def __init__(
        self,
        *,
        cooldown_seconds: float = DEFAULT_AI_COOLDOWN_SECONDS,
        clock: Clock = utc_now,
    ) -> None:
        self.cooldown = timedelta(seconds=cooldown_seconds)
        self._clock = clock
        self.failed_recently = False
        self.failed_at: datetime | None = None

    def should_skip(self) -> bool:
        if not self.failed_recently:
            return False
        if self.failed_at is None or self._clock() - self.failed_at >= self.cooldown:
            self.reset()
            return False
        return True

    def mark_failed(self) -> None:
        self.failed_recently = True
        self.failed_at = self._clock()

    def reset(self) -> None:
        self.failed_recently = False
        self.failed_at = None


def normalize_result(
    result: RecommendationResult | list[Recommendation],
    *,
    engine: Engine | None = None,
) -> RecommendationResult:
    if isinstance(result, RecommendationResult):
        return result
    return RecommendationResult.from_recommendations(list(result), engine=engine)


class RecommendationOrchestrator:
    def __init__(
        self,
        store: RecommendationStore,
        *,
        ai_recommender: AIRecommender | None = None,
        failure_state: AIFailureState | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.ai_recommender = ai_recommender
        self.failure_state = failure_state or AIFailureState(clock=clock)
        self._clock = clock

    @property
    def ai_enabled(self) -> bool:
        return self.ai_recommender is not None and self.ai_recommender.available

    async def load_candidates(self, user_id: str) -> list[JobPosting]:
        applied = await run_in_threadpool(self.store.list_applied_job_ids, user_id)
        wishlisted = await run_in_threadpool(self.store.list_wishlisted_job_ids, user_id)
        excluded = {*applied, *wishlisted}
        jobs = await run_in_threadpool(self.store.find_open_jobs_excluding, excluded)
        return [job for job in jobs if job.id not in excluded]

    async def get_recommendations(self, user_id: str, limit: int = 10) -> RecommendationResult:
        profile = await run_in_threadpool(self.store.find_seeker_profile, user_id)
        if profile is None:
            raise ProfileNotFound(user_id)
        if not profile.is_complete():
            raise ProfileIncomplete(user_id)

        jobs = await self.load_candidates(user_id)
        if not jobs:
            return RecommendationResult(message=MessageCode.NO_JOBS_AVAILABLE)

        if self.ai_enabled:
            if self.failure_state.should_skip():
                LOGGER.info(
                    json.dumps(
                        {
                            "event": "ai_skipped",
                            "user_id": user_id,
                            "failed_at": self.failure_state.failed_at.isoformat()
                            if self.failure_state.failed_at
                            else None,
                        }
                    )
                )
            else:
                try:
                    result = await self.ai_recommender.rank(profile, jobs, limit)
                except AIUnavailable as exc:
                    LOGGER.info(json.dumps({"event": "ai_unavailable", "error": str(exc)}))
                except AIError as exc:
                    self.failure_state.mark_failed()
                    LOGGER.warning(
                        json.dumps(
                            {
                                "event": "ai_fallback",
                                "user_id": user_id,
                                "error_type": type(exc).__name__,
                                "error": str(exc),
                            }
                        )
                    )
                else:
                    return normalize_result(result, engine="ai")

        return heuristic.rank(profile, jobs, limit, now=self._clock())
