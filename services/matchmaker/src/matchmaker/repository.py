from __future__ import annotations

import json
import sqlite3
import threading
from pathlib import Path

from jobboard.utils import normalize_whitespace, now_utc_iso
from pydantic import BaseModel

from matchmaker.models import (
    EducationEntry,
    ExperienceEntry,
    JobPosting,
    JobStatus,
    SeekerProfile,
)


class Application(BaseModel):
    application_id: int
    user_id: str
    job_id: str
    created_at: str


class WishlistItem(BaseModel):
    user_id: str
    job_id: str
    created_at: str


class MatchmakerRepository:
    def __init__(self, database_path: str) -> None:
        self.database_path = Path(database_path)
        self._connection: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    @property
    def connection(self) -> sqlite3.Connection:
        if self._connection is None:
            raise RuntimeError("Database connection is not initialized")
        return self._connection

    def connect(self) -> None:
        with self._lock:
            self.database_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(self.database_path, check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA foreign_keys=ON")
            self._connection.executescript(
                """
                CREATE TABLE IF NOT EXISTS seeker_profiles (
                    user_id TEXT PRIMARY KEY,
                    full_name TEXT NOT NULL DEFAULT '',
                    location TEXT NOT NULL DEFAULT '',
                    headline TEXT NOT NULL DEFAULT '',
                    bio TEXT NOT NULL DEFAULT '',
                    skills_json TEXT NOT NULL DEFAULT '[]',
                    experience_json TEXT NOT NULL DEFAULT '[]',
                    education_json TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS job_postings (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    location TEXT NOT NULL DEFAULT '',
                    type TEXT NOT NULL DEFAULT 'full-time',
                    skills_json TEXT NOT NULL DEFAULT '[]',
                    experience TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'open',
                    company_name TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS applications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    job_id TEXT NOT NULL REFERENCES job_postings(id) ON DELETE CASCADE,
                    created_at TEXT NOT NULL,
                    UNIQUE (user_id, job_id)
                );

                CREATE TABLE IF NOT EXISTS wishlist_items (
                    user_id TEXT NOT NULL,
                    job_id TEXT NOT NULL REFERENCES job_postings(id) ON DELETE CASCADE,
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, job_id)
                );
                """
            )
            self._connection.commit()

    def close(self) -> None:
        with self._lock:
            if self._connection is None:
                return
            self._connection.close()
            self._connection = None

    def upsert_seeker_profile(self, profile: SeekerProfile) -> SeekerProfile:
        with self._lock:
            now = now_utc_iso()
            skills = [normalize_whitespace(skill) for skill in profile.skills if skill.strip()]
            self.connection.execute(
                """
                INSERT INTO seeker_profiles (
                    user_id,
                    full_name,
                    location,
                    headline,
                    bio,
                    skills_json,
                    experience_json,
                    education_json,
                    created_at,
                    updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    full_name = excluded.full_name,
                    location = excluded.location,
                    headline = excluded.headline,
                    bio = excluded.bio,
                    skills_json = excluded.skills_json,
                    experience_json = excluded.experience_json,
                    education_json = excluded.education_json,
                    updated_at = excluded.updated_at
                """,
                (
                    profile.user_id,
                    normalize_whitespace(profile.full_name),
                    normalize_whitespace(profile.location),
                    normalize_whitespace(profile.headline),
                    profile.bio.strip(),
                    json.dumps(skills),
                    json.dumps([entry.model_dump() for entry in profile.experience]),
                    json.dumps([entry.model_dump() for entry in profile.education]),
                    now,
                    now,
                ),
            )
            self.connection.commit()
            stored = self.find_seeker_profile(profile.user_id)
            if stored is None:
                raise RuntimeError(f"Profile vanished after upsert: {profile.user_id}")
            return stored

    def find_seeker_profile(self, user_id: str) -> SeekerProfile | None:
        with self._lock:
            row = self.connection.execute(
                """
                SELECT
                    user_id,
                    full_name,
                    location,
                    headline,
                    bio,
                    skills_json,
                    experience_json,
                    education_json,
                    updated_at
                FROM seeker_profiles
                WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
            if row is None:
                return None
            return self._to_seeker_profile(row)

    def list_seeker_profiles(self) -> list[SeekerProfile]:
        with self._lock:
            cursor = self.connection.execute(
                """
                SELECT
                    user_id,
                    full_name,
                    location,
                    headline,
                    bio,
                    skills_json,
                    experience_json,
                    education_json,
                    updated_at
                FROM seeker_profiles
                ORDER BY user_id
                """
            )
            return [self._to_seeker_profile(row) for row in cursor.fetchall()]

    def delete_seeker_profile(self, user_id: str) -> bool:
        with self._lock:
            cursor = self.connection.execute(
                "DELETE FROM seeker_profiles WHERE user_id = ?",
                (user_id,),
            )
            self.connection.commit()
            return cursor.rowcount > 0

    def upsert_postings(self, postings: list[JobPosting]) -> int:
        with self._lock:
            if not postings:
                return 0

            now = now_utc_iso()
            for posting in postings:
                skills = [normalize_whitespace(skill) for skill in posting.skills if skill.strip()]
                self.connection.execute(
                    """
                    INSERT INTO job_postings (
                        id,
                        title,
                        description,
                        location,
                        type,
                        skills_json,
                        experience,
                        status,
                        company_name,
                        created_at,
                        updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        title = excluded.title,
                        description = excluded.description,
                        location = excluded.location,
                        type = excluded.type,
                        skills_json = excluded.skills_json,
                        experience = excluded.experience,
                        status = excluded.status,
                        company_name = excluded.company_name,
                        updated_at = excluded.updated_at
                    """,
                    (
                        posting.id,
                        normalize_whitespace(posting.title),
                        posting.description.strip(),
                        normalize_whitespace(posting.location),
                        posting.type,
                        json.dumps(skills),
                        normalize_whitespace(posting.experience),
                        posting.status,
                        normalize_whitespace(posting.company_name),
                        posting.created_at or now,
                        now,
                    ),
                )

            self.connection.commit()
            return len(postings)

    def get_posting(self, job_id: str) -> JobPosting | None:
        with self._lock:
            row = self.connection.execute(
                """
                SELECT
                    id,
                    title,
                    description,
                    location,
                    type,
                    skills_json,
                    experience,
                    status,
                    company_name,
                    created_at
                FROM job_postings
                WHERE id = ?
                """,
                (job_id,),
            ).fetchone()
            if row is None:
                return None
            return self._to_job_posting(row)

    def list_postings(self, limit: int, status: JobStatus | None = None) -> list[JobPosting]:
        with self._lock:
            cursor = self.connection.execute(
                """
                SELECT
                    id,
                    title,
                    description,
                    location,
                    type,
                    skills_json,
                    experience,
                    status,
                    company_name,
                    created_at
                FROM job_postings
                WHERE (? IS NULL OR status = ?)
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                (status, status, limit),
            )
            return [self._to_job_posting(row) for row in cursor.fetchall()]

    def find_open_jobs_excluding(self, excluded_ids: set[str]) -> list[JobPosting]:
        with self._lock:
            cursor = self.connection.execute(
                """
                SELECT
                    id,
                    title,
                    description,
                    location,
                    type,
                    skills_json,
                    experience,
                    status,
                    company_name,
                    created_at
                FROM job_postings
                WHERE status = 'open'
                ORDER BY rowid
                """
            )
            return [
                self._to_job_posting(row)
                for row in cursor.fetchall()
                if row["id"] not in excluded_ids
            ]

    def create_application(self, user_id: str, job_id: str) -> Application:
        with self._lock:
            now = now_utc_iso()
            self.connection.execute(
                """
                INSERT INTO applications (user_id, job_id, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(user_id, job_id) DO NOTHING
                """,
                (user_id, job_id, now),
            )
            self.connection.commit()
            row = self.connection.execute(
                """
                SELECT id AS application_id, user_id, job_id, created_at
                FROM applications
                WHERE user_id = ? AND job_id = ?
                """,
                (user_id, job_id),
            ).fetchone()
            return Application(**dict(row))

    def get_application(self, application_id: int) -> Application | None:
        with self._lock:
            row = self.connection.execute(
                """
                SELECT id AS application_id, user_id, job_id, created_at
                FROM applications
                WHERE id = ?
                """,
                (application_id,),
            ).fetchone()
            if row is None:
                return None
            return Application(**dict(row))

    def list_applied_job_ids(self, user_id: str) -> list[str]:
        with self._lock:
            cursor = self.connection.execute(
                "SELECT job_id FROM applications WHERE user_id = ? ORDER BY id",
                (user_id,),
            )
            return [row["job_id"] for row in cursor.fetchall()]

    def add_to_wishlist(self, user_id: str, job_id: str) -> WishlistItem:
        with self._lock:
            now = now_utc_iso()
            self.connection.execute(
                """
                INSERT INTO wishlist_items (user_id, job_id, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(user_id, job_id) DO NOTHING
                """,
                (user_id, job_id, now),
            )
            self.connection.commit()
            row = self.connection.execute(
                """
                SELECT user_id, job_id, created_at
                FROM wishlist_items
                WHERE user_id = ? AND job_id = ?
                """,
                (user_id, job_id),
            ).fetchone()
            return WishlistItem(**dict(row))

    def remove_from_wishlist(self, user_id: str, job_id: str) -> bool:
        with self._lock:
            cursor = self.connection.execute(
                "DELETE FROM wishlist_items WHERE user_id = ? AND job_id = ?",
                (user_id, job_id),
            )
            self.connection.commit()
            return cursor.rowcount > 0

    def list_wishlisted_job_ids(self, user_id: str) -> list[str]:
        with self._lock:
            cursor = self.connection.execute(
                "SELECT job_id FROM wishlist_items WHERE user_id = ? ORDER BY created_at",
                (user_id,),
            )
            return [row["job_id"] for row in cursor.fetchall()]

    def _to_seeker_profile(self, row: sqlite3.Row) -> SeekerProfile:
        return SeekerProfile(
            user_id=row["user_id"],
            full_name=row["full_name"],
            location=row["location"],
            headline=row["headline"],
            bio=row["bio"],
            skills=json.loads(row["skills_json"]),
            experience=[ExperienceEntry(**item) for item in json.loads(row["experience_json"])],
            education=[EducationEntry(**item) for item in json.loads(row["education_json"])],
            updated_at=row["updated_at"],
        )

    def _to_job_posting(self, row: sqlite3.Row) -> JobPosting:
        return JobPosting(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            location=row["location"],
            type=row["type"],
            skills=json.loads(row["skills_json"]),
            experience=row["experience"],
            status=row["status"],
            company_name=row["company_name"],
            created_at=row["created_at"],
        )
