"""
Jobs API routes.

Provides:
- GET /jobs/recommended: open jobs ranked for the calling worker
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from rozgaar.api.dependencies import get_current_user, get_db
from rozgaar.api.middleware.error_handler import ForbiddenException
from rozgaar.models.jobs import Job, JobStatus
from rozgaar.models.users import User, UserRole
from rozgaar.services.job_matching import match_indicators, rank_jobs
from rozgaar.services.pricing import as_money
from rozgaar.services.store import store_errors


router = APIRouter(prefix="/jobs", tags=["jobs"])


class RecommendedJobResponse(BaseModel):
    id: UUID
    employer_id: UUID
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    pay: Optional[Decimal] = None
    worker_type: Optional[str] = None
    created_at: datetime
    score: float
    matched_skills: List[str]
    indicators: List[Dict[str, Any]]


@router.get("/recommended", response_model=List[RecommendedJobResponse])
def recommended_jobs(
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> List[RecommendedJobResponse]:
    """Open jobs ordered by how well they fit the worker's skills and location."""
    if current_user.role != UserRole.WORKER:
        raise ForbiddenException("Only workers get job recommendations")

    with store_errors(db):
        jobs = db.execute(
            select(Job).where(Job.status == JobStatus.OPEN).order_by(Job.created_at.desc())
        ).scalars().all()

    results = []
    for match in rank_jobs(jobs, current_user)[:limit]:
        job = match.job
        results.append(RecommendedJobResponse(
            id=job.id,
            employer_id=job.employer_id,
            title=job.title,
            description=job.description,
            location=job.location,
            pay=as_money(job.pay),
            worker_type=job.worker_type,
            created_at=job.created_at,
            score=match.score,
            matched_skills=match.matched_skills,
            indicators=match_indicators(match),
        ))
    return results
