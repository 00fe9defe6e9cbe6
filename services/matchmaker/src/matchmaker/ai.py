from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Protocol

from openai import APIError, AsyncOpenAI
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from matchmaker.errors import (
    AIError,
    AIRequestFailed,
    AIResponseInvalid,
    AIUnavailable,
    ProfileIncomplete,
)
from matchmaker.models import (
    JobPosting,
    JobType,
    MatchBreakdown,
    MessageCode,
    Recommendation,
    RecommendationResult,
    SeekerProfile,
    as_percentage,
)

LOGGER = logging.getLogger("jobboard.matchmaker.ai")

DEFAULT_AI_MODEL = "gemini-2.0-flash"
DEFAULT_AI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
DEFAULT_AI_TIMEOUT_SECONDS = 30.0
MAX_JOBS_PER_REQUEST = 50
MIN_MATCH_SCORE = 0.25
JOB_DESCRIPTION_LIMIT = 500
AI_REASONING = "AI-powered match based on your profile"

_CODE_FENCE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class TextGenerator(Protocol):
    async def generate(self, prompt: str) -> str: ...


class OpenAITextGenerator:
    def __init__(
        self,
        *,
        api_key: str,
        model: str = DEFAULT_AI_MODEL,
        base_url: str | None = DEFAULT_AI_BASE_URL,
        timeout_seconds: float = DEFAULT_AI_TIMEOUT_SECONDS,
    ) -> None:
        self.model = model
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
            max_retries=1,
        )

    async def generate(self, prompt: str) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=0.2,
            )
        except APIError as exc:
            raise AIRequestFailed(f"AI provider request failed: {exc}") from exc

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message or not choice.message.content:
            raise AIResponseInvalid("AI provider returned no content")
        return choice.message.content


class AIMatch(BaseModel):
    job_id: str = Field(validation_alias=AliasChoices("jobId", "job_id"))
    match_score: float = Field(
        ge=0.0,
        le=1.0,
        validation_alias=AliasChoices("matchScore", "match_score"),
    )
    skill_match: float | None = Field(
        default=None,
        validation_alias=AliasChoices("skillMatch", "skill_match"),
    )
    location_match: float | None = Field(
        default=None,
        validation_alias=AliasChoices("locationMatch", "location_match"),
    )
    experience_match: float | None = Field(
        default=None,
        validation_alias=AliasChoices("experienceMatch", "experience_match"),
    )
    reasoning: str | None = None

    @field_validator("job_id", mode="before")
    @classmethod
    def stringify_job_id(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return value
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        if isinstance(value, int | float):
            return str(value)
        return value


class JobPostingDraft(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    location: str = ""
    type: JobType | None = None
    skills: list[str] = Field(default_factory=list)
    experience: str = ""
    salary_min: float | None = None
    salary_max: float | None = None
    salary_currency: str = "USD"


class ImprovementSuggestion(BaseModel):
    area: str = ""
    suggestion: str = ""
    priority: str = "medium"


class JobPostingAnalysis(BaseModel):
    overall_score: float = Field(
        default=0,
        validation_alias=AliasChoices("overallScore", "overall_score"),
    )
    strengths: list[str] = Field(default_factory=list)
    improvements: list[ImprovementSuggestion] = Field(default_factory=list)
    suggested_keywords: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("suggestedKeywords", "suggested_keywords"),
    )
    competitiveness: str = ""
    summary: str = ""
    error: bool = False


class SkillsComparison(BaseModel):
    matched: list[str] = Field(default_factory=list)
    missing: list[str] = Field(default_factory=list)
    bonus: list[str] = Field(default_factory=list)


class CandidateAnalysis(BaseModel):
    match_score: float = Field(
        default=0,
        validation_alias=AliasChoices("matchScore", "match_score"),
    )
    skills_match: SkillsComparison = Field(
        default_factory=SkillsComparison,
        validation_alias=AliasChoices("skillsMatch", "skills_match"),
    )
    experience_match: str = Field(
        default="",
        validation_alias=AliasChoices("experienceMatch", "experience_match"),
    )
    location_fit: str = Field(
        default="",
        validation_alias=AliasChoices("locationFit", "location_fit"),
    )
    strengths: list[str] = Field(default_factory=list)
    concerns: list[str] = Field(default_factory=list)
    recommendation: str = ""
    summary: str = ""
    error: bool = False


def unavailable_job_analysis() -> JobPostingAnalysis:
    return JobPostingAnalysis(
        strengths=["Unable to analyze at this time"],
        competitiveness="needs review",
        summary="AI analysis temporarily unavailable. Please try again later.",
        error=True,
    )


def unavailable_candidate_analysis() -> CandidateAnalysis:
    return CandidateAnalysis(
        experience_match="Unable to analyze",
        location_fit="Unable to analyze",
        recommendation="review manually",
        summary="AI analysis temporarily unavailable.",
        error=True,
    )


def strip_code_fences(text: str) -> str:
    return _CODE_FENCE.sub("", text).strip()


def parse_json_array(text: str) -> list[Any] | None:
    cleaned = strip_code_fences(text)
    match = _JSON_ARRAY.search(cleaned)
    if match:
        cleaned = match.group(0)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, list):
        return None
    return parsed


def parse_json_object(text: str) -> dict[str, Any] | None:
    match = _JSON_OBJECT.search(strip_code_fences(text))
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def format_profile(profile: SeekerProfile) -> dict[str, Any]:
    return {
        "skills": list(profile.skills),
        "location": profile.location or "Not specified",
        "headline": profile.headline,
        "bio": profile.bio,
        "experience": [entry.model_dump() for entry in profile.experience],
        "education": [entry.model_dump() for entry in profile.education],
    }


def format_jobs(jobs: list[JobPosting]) -> list[dict[str, Any]]:
    return [
        {
            "id": job.id,
            "title": job.title,
            "description": job.description[:JOB_DESCRIPTION_LIMIT],
            "location": job.location,
            "type": job.type,
            "skills": list(job.skills),
            "experience": job.experience,
            "companyName": job.company_name,
        }
        for job in jobs
    ]


def build_recommendation_prompt(
    profile: SeekerProfile,
    jobs: list[JobPosting],
    limit: int,
    *,
    min_match_score: float = MIN_MATCH_SCORE,
) -> str:
    seeker = format_profile(profile)
    skills = ", ".join(seeker["skills"]) or "Not specified"
    experience = (
        json.dumps(seeker["experience"]) if seeker["experience"] else "No experience listed"
    )
    education = json.dumps(seeker["education"]) if seeker["education"] else "No education listed"
    return f"""You are a job recommendation engine.
Match the job seeker below against the open job postings.

## SEEKER PROFILE
- Skills: {skills}
- Location: {seeker["location"]}
- Headline: {seeker["headline"] or "Not specified"}
- Bio: {seeker["bio"] or "Not specified"}
- Work experience: {experience}
- Education: {education}

## OPEN JOBS
{json.dumps(format_jobs(jobs), indent=2)}

## HOW TO MATCH
1. Skills (highest weight): direct matches, synonyms and aliases (React = ReactJS = React.js,
   JavaScript = JS, Machine Learning = ML = AI), related skill clusters and transferable skills.
2. Experience: similar titles or a natural career step, relevant industry, years required
   versus years held.
3. Location: same city or region is best; remote jobs suit every location.
4. Career trajectory: does the role fit the goals implied by the headline and bio?
Partial matches are still useful; score them proportionally instead of leaving them out.

## OUTPUT
Return ONLY a JSON array, with no markdown and no commentary:
[
  {{
    "jobId": "id copied exactly from the job list",
    "matchScore": 0.75,
    "skillMatch": 0.8,
    "locationMatch": 0.9,
    "experienceMatch": 0.7,
    "reasoning": "One or two sentences"
  }}
]
- Return at most {limit} jobs.
- All scores are between 0.0 and 1.0; matchScore weighs skills highest.
- Only include jobs with matchScore >= {min_match_score}.
- Sort by matchScore, highest first.
- Return [] when nothing matches."""


def build_job_analysis_prompt(draft: JobPostingDraft) -> str:
    salary = "Not specified"
    if draft.salary_min is not None or draft.salary_max is not None:
        salary = f"{draft.salary_min or '?'}-{draft.salary_max or '?'} {draft.salary_currency}"
    return f"""You review job postings and suggest concrete improvements.

Job posting:
- Title: {draft.title}
- Description: {draft.description}
- Location: {draft.location or "Not specified"}
- Type: {draft.type or "Not specified"}
- Required skills: {", ".join(draft.skills) or "None listed"}
- Experience: {draft.experience or "Not specified"}
- Salary: {salary}

Respond with ONLY this JSON object:
{{
  "overallScore": <integer 1-100>,
  "strengths": [<2-3 strengths>],
  "improvements": [
    {{"area": "<area>", "suggestion": "<suggestion>", "priority": "high|medium|low"}}
  ],
  "suggestedKeywords": [<3-5 keywords>],
  "competitiveness": "excellent|good|average|needs work",
  "summary": "<2-3 sentences>"
}}"""


def build_candidate_analysis_prompt(profile: SeekerProfile, job: JobPosting) -> str:
    experience = "; ".join(
        f"{entry.title} at {entry.company} ({entry.duration})" for entry in profile.experience
    )
    education = "; ".join(
        f"{entry.degree} from {entry.school} ({entry.year})" for entry in profile.education
    )
    return f"""You are an experienced recruiter. Assess how well this candidate fits the job.

Candidate:
- Name: {profile.full_name or "Anonymous"}
- Headline: {profile.headline or "Not provided"}
- Skills: {", ".join(profile.skills) or "None listed"}
- Location: {profile.location or "Not specified"}
- Bio: {profile.bio or "Not provided"}
- Experience: {experience or "No experience listed"}
- Education: {education or "No education listed"}

Job:
- Title: {job.title}
- Description: {job.description or "Not provided"}
- Required skills: {", ".join(job.skills) or "None specified"}
- Experience required: {job.experience or "Not specified"}
- Location: {job.location or "Not specified"}

Respond with ONLY this JSON object:
{{
  "matchScore": <integer 0-100>,
  "skillsMatch": {{"matched": [], "missing": [], "bonus": []}},
  "experienceMatch": "<assessment>",
  "locationFit": "<assessment>",
  "strengths": [<2-3 strengths>],
  "concerns": [<gaps or concerns>],
  "recommendation": "hire|consider|not recommended",
  "summary": "<2-3 sentences>"
}}"""


class AIRecommender:
    def __init__(
        self,
        generator: TextGenerator | None,
        *,
        timeout_seconds: float = DEFAULT_AI_TIMEOUT_SECONDS,
        max_jobs: int = MAX_JOBS_PER_REQUEST,
        min_match_score: float = MIN_MATCH_SCORE,
    ) -> None:
        self._generator = generator
        self.timeout_seconds = timeout_seconds
        self.max_jobs = max_jobs
        self.min_match_score = min_match_score

    @property
    def available(self) -> bool:
        return self._generator is not None

    async def _generate(self, prompt: str) -> str:
        if self._generator is None:
            raise AIUnavailable("AI provider is not configured")
        try:
            text = await asyncio.wait_for(
                self._generator.generate(prompt),
                timeout=self.timeout_seconds,
            )
        except TimeoutError as exc:
            raise AIRequestFailed(
                f"AI provider timed out after {self.timeout_seconds:g}s"
            ) from exc
        except AIError:
            raise
        except Exception as exc:
            raise AIRequestFailed(f"AI provider request failed: {exc}") from exc
        if not text or not text.strip():
            raise AIResponseInvalid("AI provider returned an empty response")
        return text

    async def rank(
        self,
        profile: SeekerProfile,
        jobs: list[JobPosting],
        limit: int,
    ) -> RecommendationResult:
        if not profile.is_complete():
            raise ProfileIncomplete(profile.user_id)
        if not jobs:
            return RecommendationResult(message=MessageCode.NO_JOBS_AVAILABLE, engine="ai")

        batch = jobs[: self.max_jobs]
        if len(jobs) > self.max_jobs:
            LOGGER.info(
                json.dumps(
                    {
                        "event": "ai_candidates_truncated",
                        "user_id": profile.user_id,
                        "sent": len(batch),
                        "available": len(jobs),
                    }
                )
            )

        prompt = build_recommendation_prompt(
            profile,
            batch,
            limit,
            min_match_score=self.min_match_score,
        )
        text = await self._generate(prompt)

        payload = parse_json_array(text)
        if payload is None:
            LOGGER.warning(
                json.dumps(
                    {
                        "event": "ai_response_unparseable",
                        "user_id": profile.user_id,
                        "excerpt": text[:300],
                    }
                )
            )
            return RecommendationResult(message=MessageCode.NO_SUITABLE_JOBS, engine="ai")

        recommendations = self._to_recommendations(payload, batch, limit)
        return RecommendationResult.from_recommendations(recommendations, engine="ai")

    def _to_recommendations(
        self,
        payload: list[Any],
        jobs: list[JobPosting],
        limit: int,
    ) -> list[Recommendation]:
        jobs_by_id = {job.id: job for job in jobs}
        seen: set[str] = set()
        recommendations: list[Recommendation] = []
        for item in payload:
            if not isinstance(item, dict):
                continue
            try:
                match = AIMatch.model_validate(item)
            except ValidationError:
                LOGGER.debug("Dropping malformed AI match: %s", item)
                continue
            if match.match_score < self.min_match_score:
                continue
            job = jobs_by_id.get(match.job_id)
            if job is None or match.job_id in seen:
                continue
            seen.add(match.job_id)
            skill_match = match.skill_match if match.skill_match is not None else match.match_score
            recommendations.append(
                Recommendation(
                    job=job,
                    score=match.match_score,
                    reasoning=match.reasoning or AI_REASONING,
                    breakdown=MatchBreakdown(
                        skill_match=as_percentage(skill_match),
                        location_match=as_percentage(match.location_match),
                        experience_match=as_percentage(match.experience_match),
                    ),
                )
            )
        recommendations.sort(key=lambda item: item.score, reverse=True)
        return recommendations[: max(limit, 0)]

    async def analyze_job_posting(self, draft: JobPostingDraft) -> JobPostingAnalysis:
        text = await self._generate(build_job_analysis_prompt(draft))
        payload = parse_json_object(text)
        if payload is None:
            LOGGER.warning("Failed to parse job posting analysis: %s", text[:300])
            return unavailable_job_analysis()
        try:
            return JobPostingAnalysis.model_validate(payload)
        except ValidationError as exc:
            LOGGER.warning("Job posting analysis failed validation: %s", exc)
            return unavailable_job_analysis()

    async def analyze_candidate(
        self,
        profile: SeekerProfile,
        job: JobPosting,
    ) -> CandidateAnalysis:
        text = await self._generate(build_candidate_analysis_prompt(profile, job))
        payload = parse_json_object(text)
        if payload is None:
            LOGGER.warning("Failed to parse candidate analysis: %s", text[:300])
            return unavailable_candidate_analysis()
        try:
            return CandidateAnalysis.model_validate(payload)
        except ValidationError as exc:
            LOGGER.warning("Candidate analysis failed validation: %s", exc)
            return unavailable_candidate_analysis()
