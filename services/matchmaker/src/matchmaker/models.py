from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field

JobType = Literal["full-time", "part-time", "contract", "remote", "internship"]
JobStatus = Literal["open", "closed", "paused"]
Engine = Literal["ai", "heuristic"]


class MessageCode(StrEnum):
    SUCCESS = "SUCCESS"
    NO_JOBS_AVAILABLE = "NO_JOBS_AVAILABLE"
    NO_SUITABLE_JOBS = "NO_SUITABLE_JOBS"
    PROFILE_NOT_FOUND = "PROFILE_NOT_FOUND"
    PROFILE_INCOMPLETE = "PROFILE_INCOMPLETE"
    ERROR = "ERROR"


class ExperienceEntry(BaseModel):
    title: str = ""
    company: str = ""
    duration: str = ""
    description: str = ""


class EducationEntry(BaseModel):
    school: str = ""
    degree: str = ""
    year: str = ""


class SeekerProfile(BaseModel):
    user_id: str
    full_name: str = ""
    location: str = ""
    headline: str = ""
    bio: str = ""
    skills: list[str] = Field(default_factory=list)
    experience: list[ExperienceEntry] = Field(default_factory=list)
    education: list[EducationEntry] = Field(default_factory=list)
    updated_at: str | None = None

    def is_complete(self) -> bool:
        return any(
            (
                bool(self.skills),
                bool(self.location.strip()),
                bool(self.experience),
                bool(self.education),
                bool(self.headline.strip()),
                bool(self.bio.strip()),
            )
        )


class JobPosting(BaseModel):
    id: str = Field(..., description="Unique job identifier")
    title: str
    description: str = ""
    location: str = ""
    type: JobType = "full-time"
    skills: list[str] = Field(default_factory=list)
    experience: str = ""
    status: JobStatus = "open"
    company_name: str = ""
    created_at: str | None = None


class ScoreBreakdown(BaseModel):
    skill_match: float
    experience_match: float
    location_match: float
    keyword_match: float
    recency_bonus: float


class MatchBreakdown(BaseModel):
    skill_match: float | None = None
    experience_match: float | None = None
    location_match: float | None = None
    keyword_match: float | None = None
    recency_bonus: float | None = None


class Recommendation(BaseModel):
    job: JobPosting
    score: float
    reasoning: str
    breakdown: MatchBreakdown


class RecommendationResult(BaseModel):
    recommendations: list[Recommendation] = Field(default_factory=list)
    message: MessageCode
    engine: Engine | None = None

    @classmethod
    def from_recommendations(
        cls,
        recommendations: list[Recommendation],
        *,
        engine: Engine | None = None,
    ) -> RecommendationResult:
        message = MessageCode.SUCCESS if recommendations else MessageCode.NO_SUITABLE_JOBS
        return cls(recommendations=recommendations, message=message, engine=engine)


def as_percentage(value: float | None) -> float | None:
    if value is None:
        return None
    return round(value * 100, 1)
