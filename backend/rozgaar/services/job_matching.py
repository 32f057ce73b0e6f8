"""
Job matching - rank open jobs for a worker.

Scoring, highest first:
1. Skills: each worker skill found in the job title (+10000), description
   (+8000) or requested worker type (+6000). Case-insensitive substring match.
2. Location, only for jobs with a skill match: +1000 when the job location
   contains the worker's location, otherwise +500 for every part of the
   worker's "City, State" location (longer than 2 chars) found in a part of
   the job location.
3. Recency: up to +100 for new postings, 10 points less per day of age.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from rozgaar.models.jobs import Job
from rozgaar.models.users import User


TITLE_MATCH = 10000
DESCRIPTION_MATCH = 8000
WORKER_TYPE_MATCH = 6000
EXACT_LOCATION = 1000
PARTIAL_LOCATION = 500
RECENCY_MAX = 100
RECENCY_PER_DAY = 10


@dataclass
class JobMatch:
    """A job with its score and the reasons it matched."""
    job: Job
    score: float
    matched_skills: List[str] = field(default_factory=list)
    location_match: Optional[str] = None  # "perfect_location" or "near_you"


def _lower(value: Optional[str]) -> str:
    return (value or "").lower()


def _location_parts(location: str) -> List[str]:
    return [part.strip() for part in location.split(",")]


def _aware(moment: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def location_bonus(job_location: Optional[str], worker_location: Optional[str]) -> int:
    worker_loc = _lower(worker_location)
    job_loc = _lower(job_location)
    if not worker_loc:
        return 0
    if worker_loc in job_loc:
        return EXACT_LOCATION

    job_parts = _location_parts(job_loc)
    bonus = 0
    for part in _location_parts(worker_loc):
        if len(part) > 2 and any(part in job_part for job_part in job_parts):
            bonus += PARTIAL_LOCATION
    return bonus


def recency_bonus(created_at: Optional[datetime], now: datetime) -> float:
    if created_at is None:
        return 0
    age_days = (_aware(now) - _aware(created_at)).total_seconds() / 86400
    return max(0.0, RECENCY_MAX - RECENCY_PER_DAY * max(age_days, 0.0))


def score_job(job: Job, worker: User, now: Optional[datetime] = None) -> JobMatch:
    """Score one job for a worker."""
    now = now or datetime.now(timezone.utc)
    title = _lower(job.title)
    description = _lower(job.description)
    worker_type = _lower(job.worker_type)

    score: float = 0
    matched: List[str] = []
    for skill in worker.skills or []:
        needle = skill.lower().strip()
        if not needle:
            continue
        hit = False
        if needle in title:
            score += TITLE_MATCH
            hit = True
        if needle in description:
            score += DESCRIPTION_MATCH
            hit = True
        if needle in worker_type:
            score += WORKER_TYPE_MATCH
            hit = True
        if hit:
            matched.append(skill)

    location_match = None
    if matched:
        bonus = location_bonus(job.location, worker.location)
        score += bonus
        if bonus >= EXACT_LOCATION and _lower(worker.location) in _lower(job.location):
            location_match = "perfect_location"
        elif bonus:
            location_match = "near_you"

    score += recency_bonus(job.created_at, now)
    return JobMatch(job=job, score=score, matched_skills=matched, location_match=location_match)


def rank_jobs(jobs: Sequence[Job], worker: User, now: Optional[datetime] = None) -> List[JobMatch]:
    """Jobs ordered by score, best first; ties keep their input order."""
    now = now or datetime.now(timezone.utc)
    matches = [score_job(job, worker, now) for job in jobs]
    return sorted(matches, key=lambda match: match.score, reverse=True)


def match_indicators(match: JobMatch) -> List[dict]:
    """Badges shown on a job card: skill match (first two skills) and location."""
    indicators = []
    if match.matched_skills:
        indicators.append({
            "type": "skill",
            "skills": match.matched_skills[:2],
            "priority": "high",
        })
    if match.location_match == "perfect_location":
        indicators.append({"type": "location", "label": "perfect_location", "priority": "high"})
    elif match.location_match == "near_you":
        indicators.append({"type": "location", "label": "near_you", "priority": "medium"})
    return indicators
