from __future__ import annotations

import logging
from datetime import datetime

from jobboard.utils import utc_now

from matchmaker.models import (
    JobPosting,
    MatchBreakdown,
    Recommendation,
    RecommendationResult,
    ScoreBreakdown,
    SeekerProfile,
    as_percentage,
)
from matchmaker.scoring import extract_user_keywords, score_job

LOGGER = logging.getLogger("jobboard.matchmaker.heuristic")

SKILL_WEIGHT = 0.40
EXPERIENCE_WEIGHT = 0.20
LOCATION_WEIGHT = 0.15
KEYWORD_WEIGHT = 0.20
RECENCY_WEIGHT = 0.05
MIN_RELEVANCE_SCORE = 0.2
HEURISTIC_REASONING = "Matched based on skills, experience, and location"


def total_score(breakdown: ScoreBreakdown) -> float:
    return (
        breakdown.skill_match * SKILL_WEIGHT
        + breakdown.experience_match * EXPERIENCE_WEIGHT
        + breakdown.location_match * LOCATION_WEIGHT
        + breakdown.keyword_match * KEYWORD_WEIGHT
        + breakdown.recency_bonus * RECENCY_WEIGHT
    )


def rank(
    profile: SeekerProfile,
    jobs: list[JobPosting],
    limit: int,
    *,
    now: datetime | None = None,
) -> RecommendationResult:
    reference_time = now or utc_now()
    keywords = extract_user_keywords(profile)

    scored: list[tuple[float, JobPosting, ScoreBreakdown]] = []
    for job in jobs:
        breakdown = score_job(profile, keywords, job, reference_time)
        scored.append((total_score(breakdown), job, breakdown))

    scored = sorted(scored, key=lambda item: item[0], reverse=True)
    relevant = [item for item in scored if item[0] >= MIN_RELEVANCE_SCORE]

    recommendations = [
        Recommendation(
            job=job,
            score=round(score, 4),
            reasoning=HEURISTIC_REASONING,
            breakdown=MatchBreakdown(
                skill_match=as_percentage(breakdown.skill_match),
                experience_match=as_percentage(breakdown.experience_match),
                location_match=as_percentage(breakdown.location_match),
                keyword_match=as_percentage(breakdown.keyword_match),
                recency_bonus=as_percentage(breakdown.recency_bonus),
            ),
        )
        for score, job, breakdown in relevant[: max(limit, 0)]
    ]
    LOGGER.debug(
        "Scored %d jobs, %d above %.0f%% threshold",
        len(jobs),
        len(relevant),
        MIN_RELEVANCE_SCORE * 100,
    )
    return RecommendationResult.from_recommendations(recommendations, engine="heuristic")
