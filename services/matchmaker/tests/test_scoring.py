from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from matchmaker.models import EducationEntry, ExperienceEntry, JobPosting, SeekerProfile
from matchmaker.scoring import (
    estimate_years,
    experience_score,
    extract_user_keywords,
    keyword_score,
    location_score,
    recency_bonus,
    score_job,
    skill_score,
)

pytestmark = pytest.mark.unit

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=UTC)


def test_skill_score_counts_job_skills_covered_through_synonyms() -> None:
    assert skill_score(["React"], ["ReactJS", "Node.js"]) == 0.5


def test_skill_score_is_zero_for_empty_inputs() -> None:
    assert skill_score([], ["Python"]) == 0.0
    assert skill_score(["Python"], []) == 0.0
    assert skill_score(["  "], ["Python"]) == 0.0


def test_skill_score_treats_duplicate_job_skills_as_one() -> None:
    assert skill_score(["python"], ["Python", "python ", "PYTHON"]) == 1.0


def test_skill_score_drops_to_zero_without_overlap() -> None:
    assert skill_score(["Go", "Rust"], ["Java", "Kotlin"]) == 0.0


def test_skill_score_never_decreases_when_a_known_skill_is_required() -> None:
    user_skills = ["Python", "Docker"]
    before = skill_score(user_skills, ["Python", "Java"])
    after = skill_score(user_skills, ["Python", "Docker"])
    assert after >= before


@pytest.mark.parametrize(
    ("user_skills", "job_skills"),
    [
        (["js"], ["JavaScript", "TypeScript", "Node"]),
        (["ml", "python"], ["Machine Learning", "AI", "PyTorch"]),
        (["k8s"], ["Kubernetes"]),
        (["a", "b", "c"], ["c"]),
    ],
)
def test_skill_score_is_bounded(user_skills: list[str], job_skills: list[str]) -> None:
    assert 0.0 <= skill_score(user_skills, job_skills) <= 1.0


@pytest.mark.parametrize(
    ("duration", "expected"),
    [
        ("3 years", 3),
        ("2 yrs", 2),
        ("1 Year", 1),
        ("2018 - 2021", 3),
        ("Jan 2019 to Mar 2020", 1),
        ("6 months", 0),
        ("since 2020", 0),
        ("", 0),
    ],
)
def test_estimate_years(duration: str, expected: int) -> None:
    assert estimate_years(ExperienceEntry(duration=duration)) == expected


def test_experience_score_is_proportional_below_requirement() -> None:
    entries = [ExperienceEntry(title="Developer", duration="3 years")]
    assert experience_score(entries, "5+ years") == pytest.approx(0.6)


def test_experience_score_sums_all_entries() -> None:
    entries = [ExperienceEntry(duration="2 years"), ExperienceEntry(duration="2016-2019")]
    assert experience_score(entries, "3-5 years") == 1.0


def test_experience_score_defaults() -> None:
    assert experience_score([ExperienceEntry(duration="3 years")], "") == 0.5
    assert experience_score([], "5 years") == 0.5
    assert experience_score([ExperienceEntry(duration="a while")], "5 years") == 0.3


def test_experience_score_without_number_in_requirement_is_met() -> None:
    assert experience_score([ExperienceEntry(duration="1 year")], "Entry level") == 1.0


def test_experience_score_whitespace_requirement_is_not_neutral() -> None:
    assert experience_score([ExperienceEntry(duration="3 years")], "   ") == 1.0
    assert experience_score([ExperienceEntry(duration="a while")], "   ") == 0.3


def test_location_score_remote_job_matches_any_location() -> None:
    assert location_score("Berlin", "Paris", "remote") == 1.0
    assert location_score("Berlin", "Remote (EU)", "full-time") == 1.0


def test_location_score_rules() -> None:
    assert location_score("", "Berlin", "full-time") == 0.5
    assert location_score("Berlin", "   ", "remote") == 0.5
    assert location_score(" berlin ", "Berlin", "full-time") == 1.0
    assert location_score("Berlin", "Berlin, Germany", "full-time") == 0.7
    assert location_score("Berlin", "Tokyo", "contract") == 0.3


def test_extract_user_keywords_collects_profile_text() -> None:
    profile = SeekerProfile(
        user_id="u-1",
        skills=["Go", "Machine Learning"],
        headline="Data engineer",
        experience=[ExperienceEntry(title="ML Lead", company="Acme")],
        education=[EducationEntry(school="MIT", degree="BSc Physics")],
    )

    assert extract_user_keywords(profile) == {
        "machine",
        "learning",
        "data",
        "engineer",
        "lead",
        "acme",
        "mit",
        "bsc",
        "physics",
    }


def test_keyword_score_caps_at_one() -> None:
    job = JobPosting(id="job-1", title="Python Engineer", description="Build python APIs")
    assert keyword_score({"python", "engineer", "apis"}, job) == 1.0


def test_keyword_score_partial_and_empty() -> None:
    job = JobPosting(id="job-1", title="Backend Engineer", description="Own services")
    keywords = {"backend", "kotlin", "spring", "gradle", "android", "compose", "room"}
    assert keyword_score(keywords, job) == pytest.approx(1 / (7 * 0.3))
    assert keyword_score(set(), job) == 0.3


@pytest.mark.parametrize(
    ("age", "expected"),
    [
        (timedelta(days=2), 0.1),
        (timedelta(days=6, hours=23), 0.1),
        (timedelta(days=7), 0.05),
        (timedelta(days=29), 0.05),
        (timedelta(days=30), 0.0),
        (timedelta(days=365), 0.0),
    ],
)
def test_recency_bonus_tiers(age: timedelta, expected: float) -> None:
    assert recency_bonus((NOW - age).isoformat(), NOW) == expected


def test_recency_bonus_ignores_missing_or_invalid_timestamps() -> None:
    assert recency_bonus(None, NOW) == 0.0
    assert recency_bonus("yesterday", NOW) == 0.0


def test_recency_bonus_accepts_zulu_and_naive_now() -> None:
    assert recency_bonus("2024-06-14T00:00:00Z", NOW.replace(tzinfo=None)) == 0.1


def test_score_job_is_deterministic_for_fixed_now() -> None:
    profile = SeekerProfile(user_id="u-1", skills=["Python"], location="Berlin")
    job = JobPosting(
        id="job-1",
        title="Python Developer",
        skills=["Python", "SQL"],
        location="Berlin",
        created_at="2024-06-10T00:00:00Z",
    )
    keywords = extract_user_keywords(profile)

    first = score_job(profile, keywords, job, NOW)
    second = score_job(profile, keywords, job, NOW)

    assert first == second
    assert first.skill_match == 0.5
    assert first.location_match == 1.0
    assert first.recency_bonus == 0.1
    for value in first.model_dump().values():
        assert 0.0 <= value <= 1.0
