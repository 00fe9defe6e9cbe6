from __future__ import annotations

import re
from datetime import UTC, datetime

from jobboard.utils import extract_words, parse_iso_datetime

from matchmaker.models import ExperienceEntry, JobPosting, ScoreBreakdown, SeekerProfile
from matchmaker.synonyms import expand, expand_all, normalize_skill

_FIRST_NUMBER = re.compile(r"(\d+)")
_EXPLICIT_YEARS = re.compile(r"(\d+)\s*(?:year|yr)", re.IGNORECASE)
_CALENDAR_YEAR = re.compile(r"\d{4}")

NEUTRAL_SCORE = 0.5
NO_EXPERIENCE_SCORE = 0.3
NO_KEYWORDS_SCORE = 0.3
PARTIAL_LOCATION_SCORE = 0.7
DISTANT_LOCATION_SCORE = 0.3


def skill_score(user_skills: list[str], job_skills: list[str]) -> float:
    required = {normalize_skill(skill) for skill in job_skills if skill.strip()}
    if not user_skills or not required:
        return 0.0
    known = expand_all(user_skills)
    if not known:
        return 0.0
    covered = sum(1 for skill in required if expand(skill) & known)
    return min(covered / len(required), 1.0)


def estimate_years(entry: ExperienceEntry) -> int:
    duration = entry.duration or ""
    explicit = _EXPLICIT_YEARS.search(duration)
    if explicit:
        return int(explicit.group(1))
    years = _CALENDAR_YEAR.findall(duration)
    if len(years) >= 2:
        return max(0, int(years[-1]) - int(years[0]))
    return 0


def experience_score(user_experience: list[ExperienceEntry], job_experience: str) -> float:
    if not job_experience or not user_experience:
        return NEUTRAL_SCORE

    match = _FIRST_NUMBER.search(job_experience)
    required_years = int(match.group(1)) if match else 0

    total_years = sum(estimate_years(entry) for entry in user_experience)
    if total_years == 0:
        return NO_EXPERIENCE_SCORE
    if total_years >= required_years:
        return 1.0
    return min(total_years / required_years, 1.0)


def location_score(user_location: str, job_location: str, job_type: str) -> float:
    user_normalized = (user_location or "").strip().lower()
    job_normalized = (job_location or "").strip().lower()
    if not user_normalized or not job_normalized:
        return NEUTRAL_SCORE

    if job_type == "remote" or "remote" in job_normalized:
        return 1.0
    if user_normalized == job_normalized:
        return 1.0
    if user_normalized in job_normalized or job_normalized in user_normalized:
        return PARTIAL_LOCATION_SCORE
    return DISTANT_LOCATION_SCORE


def extract_user_keywords(profile: SeekerProfile) -> set[str]:
    keywords: set[str] = set()
    for skill in profile.skills:
        keywords |= extract_words(skill)
    keywords |= extract_words(profile.headline)
    keywords |= extract_words(profile.bio)
    for entry in profile.experience:
        keywords |= extract_words(entry.title)
        keywords |= extract_words(entry.company)
    for entry in profile.education:
        keywords |= extract_words(entry.degree)
        keywords |= extract_words(entry.school)
    return keywords


def keyword_score(user_keywords: set[str], job: JobPosting) -> float:
    if not user_keywords:
        return NO_KEYWORDS_SCORE
    job_text = f"{job.title} {job.description}".lower()
    hits = sum(1 for keyword in user_keywords if keyword in job_text)
    return min(hits / max(len(user_keywords) * 0.3, 1), 1.0)


def recency_bonus(created_at: str | None, now: datetime) -> float:
    created = parse_iso_datetime(created_at)
    if created is None:
        return 0.0
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    age_days = (now - created).total_seconds() / 86400
    if age_days < 7:
        return 0.1
    if age_days < 30:
        return 0.05
    return 0.0


def score_job(
    profile: SeekerProfile,
    user_keywords: set[str],
    job: JobPosting,
    now: datetime,
) -> ScoreBreakdown:
    return ScoreBreakdown(
        skill_match=skill_score(profile.skills, job.skills),
        experience_match=experience_score(profile.experience, job.experience),
        location_match=location_score(profile.location, job.location, job.type),
        keyword_match=keyword_score(user_keywords, job),
        recency_bonus=recency_bonus(job.created_at, now),
    )
