from __future__ import annotations

from pathlib import Path

import pytest
from matchmaker.models import ExperienceEntry, JobPosting, SeekerProfile
from matchmaker.repository import MatchmakerRepository

pytestmark = pytest.mark.integration


@pytest.fixture
def repository(tmp_path: Path):
    repo = MatchmakerRepository(database_path=str(tmp_path / "nested" / "matchmaker.sqlite3"))
    repo.connect()
    yield repo
    repo.close()


def seed_postings(repository: MatchmakerRepository) -> None:
    repository.upsert_postings(
        [
            JobPosting(id="job-1", title="Backend  Engineer", skills=["Python", " "]),
            JobPosting(id="job-2", title="Data Scientist", status="closed"),
            JobPosting(id="job-3", title="Platform Engineer", created_at="2024-01-01T00:00:00Z"),
        ]
    )


def test_profile_upsert_round_trips_nested_entries(repository: MatchmakerRepository) -> None:
    stored = repository.upsert_seeker_profile(
        SeekerProfile(
            user_id="seeker-1",
            full_name="  Ada   Lovelace ",
            skills=["Python", "  "],
            experience=[ExperienceEntry(title="Engineer", duration="3 years")],
        )
    )

    assert stored.full_name == "Ada Lovelace"
    assert stored.skills == ["Python"]
    assert stored.experience[0].duration == "3 years"
    assert stored.updated_at


def test_profile_upsert_replaces_existing_fields(repository: MatchmakerRepository) -> None:
    repository.upsert_seeker_profile(SeekerProfile(user_id="seeker-1", location="Berlin"))
    repository.upsert_seeker_profile(SeekerProfile(user_id="seeker-1", location="Paris"))

    profiles = repository.list_seeker_profiles()
    assert [profile.location for profile in profiles] == ["Paris"]


def test_profile_delete(repository: MatchmakerRepository) -> None:
    repository.upsert_seeker_profile(SeekerProfile(user_id="seeker-1"))

    assert repository.delete_seeker_profile("seeker-1") is True
    assert repository.delete_seeker_profile("seeker-1") is False
    assert repository.find_seeker_profile("seeker-1") is None


def test_postings_are_normalized_and_filterable(repository: MatchmakerRepository) -> None:
    seed_postings(repository)

    posting = repository.get_posting("job-1")
    assert posting is not None
    assert posting.title == "Backend Engineer"
    assert posting.skills == ["Python"]
    assert posting.created_at

    assert {item.id for item in repository.list_postings(10)} == {"job-1", "job-2", "job-3"}
    assert [item.id for item in repository.list_postings(10, "closed")] == ["job-2"]
    assert len(repository.list_postings(1)) == 1


def test_posting_upsert_keeps_original_created_at(repository: MatchmakerRepository) -> None:
    seed_postings(repository)

    repository.upsert_postings(
        [JobPosting(id="job-3", title="Platform Engineer II", created_at="2030-01-01T00:00:00Z")]
    )

    posting = repository.get_posting("job-3")
    assert posting is not None
    assert posting.title == "Platform Engineer II"
    assert posting.created_at == "2024-01-01T00:00:00Z"


def test_open_jobs_exclude_closed_and_excluded_ids(repository: MatchmakerRepository) -> None:
    seed_postings(repository)

    jobs = repository.find_open_jobs_excluding({"job-1"})

    assert [job.id for job in jobs] == ["job-3"]


def test_applications_are_unique_per_user_and_job(repository: MatchmakerRepository) -> None:
    seed_postings(repository)

    first = repository.create_application("seeker-1", "job-1")
    second = repository.create_application("seeker-1", "job-1")
    repository.create_application("seeker-1", "job-3")

    assert first.application_id == second.application_id
    assert repository.get_application(first.application_id) == first
    assert repository.get_application(9999) is None
    assert repository.list_applied_job_ids("seeker-1") == ["job-1", "job-3"]
    assert repository.list_applied_job_ids("seeker-2") == []


def test_wishlist_add_and_remove(repository: MatchmakerRepository) -> None:
    seed_postings(repository)

    item = repository.add_to_wishlist("seeker-1", "job-3")
    repository.add_to_wishlist("seeker-1", "job-3")

    assert item.job_id == "job-3"
    assert repository.list_wishlisted_job_ids("seeker-1") == ["job-3"]
    assert repository.remove_from_wishlist("seeker-1", "job-3") is True
    assert repository.remove_from_wishlist("seeker-1", "job-3") is False
    assert repository.list_wishlisted_job_ids("seeker-1") == []


def test_data_survives_reconnect(tmp_path: Path) -> None:
    database_path = str(tmp_path / "matchmaker.sqlite3")
    first = MatchmakerRepository(database_path=database_path)
    first.connect()
    first.upsert_seeker_profile(SeekerProfile(user_id="seeker-1", skills=["Go"]))
    first.close()

    second = MatchmakerRepository(database_path=database_path)
    second.connect()
    try:
        profile = second.find_seeker_profile("seeker-1")
    finally:
        second.close()

    assert profile is not None
    assert profile.skills == ["Go"]


def test_using_repository_before_connect_fails(tmp_path: Path) -> None:
    repository = MatchmakerRepository(database_path=str(tmp_path / "db.sqlite3"))

    with pytest.raises(RuntimeError):
        repository.list_postings(10)
