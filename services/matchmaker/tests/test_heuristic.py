from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from matchmaker import heuristic
from matchmaker.models import (
    ExperienceEntry,
    JobPosting,
    MessageCode,
    ScoreBreakdown,
    SeekerProfile,
)

pytestmark = pytest.mark.unit

NOW = datetime(2024, 6, 15, tzinfo=UTC)


@pytest.fixture
def profile() -> SeekerProfile:
    return SeekerProfile(
        user_id="seeker-1",
        skills=["Python", "FastAPI"],
        location="Berlin",
        experience=[ExperienceEntry(title="Backend Engineer", duration="4 years")],
    )


@pytest.fixture
def jobs() -> list[JobPosting]:
    return [
        JobPosting(
            id="job-data",
            title="Data Scientist",
            description="Train models",
            location="Tokyo",
            skills=["R", "Statistics"],
            experience="10 years",
        ),
        JobPosting(
            id="job-platform",
            title="Platform Engineer",
            description="Own CI pipelines",
            location="Berlin, Germany",
            skills=["Docker", "Python"],
        ),
        JobPosting(
            id="job-backend",
            title="Backend Engineer",
            description="Build Python APIs with FastAPI",
            location="Berlin",
            skills=["Python", "FastAPI"],
            experience="3+ years",
        ),
    ]


def test_rank_orders_by_weighted_score_and_filters_irrelevant_jobs(
    profile: SeekerProfile, jobs: list[JobPosting]
) -> None:
    result = heuristic.rank(profile, jobs, limit=10, now=NOW)

    assert result.message == MessageCode.SUCCESS
    assert result.engine == "heuristic"
    assert [item.job.id for item in result.recommendations] == ["job-backend", "job-platform"]

    top = result.recommendations[0]
    assert top.score == pytest.approx(0.95)
    assert top.reasoning == heuristic.HEURISTIC_REASONING
    assert top.breakdown.skill_match == 100.0
    assert top.breakdown.location_match == 100.0
    assert top.breakdown.recency_bonus == 0.0

    second = result.recommendations[1]
    assert second.score == pytest.approx(0.5717, abs=1e-4)
    assert second.breakdown.location_match == 70.0


def test_rank_never_returns_scores_below_threshold(
    profile: SeekerProfile, jobs: list[JobPosting]
) -> None:
    result = heuristic.rank(profile, jobs, limit=10, now=NOW)

    assert all(item.score >= heuristic.MIN_RELEVANCE_SCORE for item in result.recommendations)


@pytest.mark.parametrize("limit", [0, 1, 2, 5])
def test_rank_respects_limit(profile: SeekerProfile, jobs: list[JobPosting], limit: int) -> None:
    result = heuristic.rank(profile, jobs, limit=limit, now=NOW)

    assert len(result.recommendations) <= limit


def test_rank_reports_no_suitable_jobs_when_everything_is_filtered(profile: SeekerProfile) -> None:
    job = JobPosting(
        id="job-1",
        title="Pastry Chef",
        description="Bake croissants",
        location="Lyon",
        skills=["Baking"],
        experience="8 years",
    )

    result = heuristic.rank(profile, [job], limit=5, now=NOW)

    assert result.recommendations == []
    assert result.message == MessageCode.NO_SUITABLE_JOBS


def test_rank_keeps_input_order_for_equal_scores(profile: SeekerProfile) -> None:
    twins = [
        JobPosting(id=job_id, title="Backend Engineer", skills=["Python"], location="Berlin")
        for job_id in ("job-b", "job-a", "job-c")
    ]

    result = heuristic.rank(profile, twins, limit=10, now=NOW)

    assert [item.job.id for item in result.recommendations] == ["job-b", "job-a", "job-c"]


def test_rank_is_deterministic(profile: SeekerProfile, jobs: list[JobPosting]) -> None:
    first = heuristic.rank(profile, jobs, limit=10, now=NOW)
    second = heuristic.rank(profile, jobs, limit=10, now=NOW)

    assert first == second


def test_recent_posting_earns_recency_bonus(profile: SeekerProfile) -> None:
    fresh = JobPosting(
        id="job-fresh",
        title="Backend Engineer",
        skills=["Python"],
        location="Berlin",
        created_at=(NOW - timedelta(days=2)).isoformat(),
    )
    stale = fresh.model_copy(update={"id": "job-stale", "created_at": "2023-01-01T00:00:00Z"})

    result = heuristic.rank(profile, [stale, fresh], limit=10, now=NOW)

    assert [item.job.id for item in result.recommendations] == ["job-fresh", "job-stale"]
    assert result.recommendations[0].breakdown.recency_bonus == 10.0
    assert result.recommendations[0].score - result.recommendations[1].score == pytest.approx(0.005)


def test_total_score_is_not_clamped() -> None:
    breakdown = ScoreBreakdown(
        skill_match=1.0,
        experience_match=1.0,
        location_match=1.0,
        keyword_match=1.0,
        recency_bonus=0.1,
    )
    total = heuristic.total_score(breakdown)

    assert total == pytest.approx(1.005)
    assert total > 1.0
