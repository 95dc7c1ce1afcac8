"""
Scheduled background jobs.

1. Contract renewal: every user who should hold a contract for the current
   academic period (students with an active enrollment, teachers assigned to
   a class of that period) and has none gets one, through the same issue path
   as interactive requests.
2. Temp artifact cleanup: files under the storage temp/ prefix older than
   TEMP_RETENTION_DAYS are removed.

Each contract is issued in its own session. One failure is logged and the
batch goes on.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, exists, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.v1.contracts import service as contract_service
from app.auth.models import User
from app.auth.schemas import CurrentUser
from app.core.config import settings
from app.core.enums import EnrollmentStatus, UserRole
from app.core.exceptions import ConflictError, NotFoundError, ServiceError
from app.core.models import ClassTeacher, Contract, Enrollment, SchoolClass
from app.core.scheduler import ScheduledJob
from app.core.storage import ArtifactStorage, get_storage
from app.db.session import AsyncSessionLocal, retry_once_on_conflict

logger = logging.getLogger(__name__)

JOB_ID_RENEW_CONTRACTS = "contracts_renewal"
JOB_ID_CLEANUP_TEMP = "temp_artifact_cleanup"

# Principal the jobs act as; authorization still runs through rbac.
SYSTEM_ACTOR = CurrentUser(id=UUID(int=0), role=UserRole.ADMIN, name="scheduler")


def _no_contract_for(user_column, semester: int, year: int):
    return ~exists().where(
        and_(
            Contract.user_id == user_column,
            Contract.semester == semester,
            Contract.year == year,
            Contract.deleted_at.is_(None),
        )
    )


async def find_renewal_candidates(
    db: AsyncSession,
    semester: int,
    year: int,
) -> List[Tuple[UUID, Optional[UUID]]]:
    """(user_id, enrollment_id) pairs lacking a contract for (semester, year)."""
    students = await db.execute(
        select(Enrollment.student_id, Enrollment.id)
        .join(User, User.id == Enrollment.student_id)
        .where(
            Enrollment.status == EnrollmentStatus.ACTIVE.value,
            Enrollment.deleted_at.is_(None),
            User.deleted_at.is_(None),
            _no_contract_for(Enrollment.student_id, semester, year),
        )
    )
    teachers = await db.execute(
        select(ClassTeacher.teacher_id)
        .join(SchoolClass, SchoolClass.id == ClassTeacher.class_id)
        .join(User, User.id == ClassTeacher.teacher_id)
        .where(
            SchoolClass.semester == semester,
            SchoolClass.year == year,
            SchoolClass.deleted_at.is_(None),
            User.deleted_at.is_(None),
            _no_contract_for(ClassTeacher.teacher_id, semester, year),
        )
        .distinct()
    )
    candidates: List[Tuple[UUID, Optional[UUID]]] = [(row[0], row[1]) for row in students.all()]
    candidates.extend((row[0], None) for row in teachers.all())
    return candidates


async def _issue_for(
    session_factory: async_sessionmaker,
    storage: ArtifactStorage,
    user_id: UUID,
    enrollment_id: Optional[UUID],
    semester: int,
    year: int,
) -> None:
    async with session_factory() as db:
        await contract_service.issue_semester_contract(
            db,
            storage,
            SYSTEM_ACTOR,
            user_id,
            semester=semester,
            year=year,
            enrollment_id=enrollment_id,
        )


async def renew_contracts(
    now: datetime,
    session_factory: Optional[async_sessionmaker] = None,
    storage: Optional[ArtifactStorage] = None,
    semester: Optional[int] = None,
    year: Optional[int] = None,
) -> Dict[str, int]:
    """Issue missing contracts for (semester, year), by default the period containing now."""
    session_factory = session_factory or AsyncSessionLocal
    storage = storage or get_storage()
    if semester is None or year is None:
        semester, year = contract_service.current_period(now)
    summary = {"issued": 0, "skipped": 0, "failed": 0}

    async with session_factory() as db:
        try:
            await contract_service.get_template(db)
        except NotFoundError:
            logger.warning("No active contract template; skipping renewal for %s/%s", semester, year)
            return summary
        candidates = await find_renewal_candidates(db, semester, year)

    logger.info("Contract renewal %s/%s: %d candidate(s)", semester, year, len(candidates))
    for user_id, enrollment_id in candidates:
        try:
            await retry_once_on_conflict(
                lambda: _issue_for(session_factory, storage, user_id, enrollment_id, semester, year)
            )
            summary["issued"] += 1
        except ConflictError:
            # Issued concurrently by another request; nothing left to do.
            summary["skipped"] += 1
        except ServiceError as e:
            summary["failed"] += 1
            logger.warning("Contract renewal rejected for user %s: %s", user_id, e.message)
        except Exception as e:
            summary["failed"] += 1
            logger.error("Contract renewal failed for user %s: %s", user_id, e, exc_info=True)

    logger.info(
        "Contract renewal %s/%s done: %d issued, %d skipped, %d failed",
        semester,
        year,
        summary["issued"],
        summary["skipped"],
        summary["failed"],
    )
    return summary


async def cleanup_temp_artifacts(
    now: datetime,
    storage: Optional[ArtifactStorage] = None,
    retention_days: Optional[int] = None,
) -> int:
    storage = storage or get_storage()
    days = retention_days if retention_days is not None else settings.temp_retention_days
    removed = await storage.cleanup_temp(now - timedelta(days=days))
    logger.info("Temp cleanup removed %d file(s) older than %d day(s)", removed, days)
    return removed


def build_jobs(
    session_factory: Optional[async_sessionmaker] = None,
    storage: Optional[ArtifactStorage] = None,
) -> List[ScheduledJob]:
    """The process's scheduled jobs, in the order they run on a shared tick."""

    async def _renewal(now: datetime) -> None:
        await renew_contracts(now, session_factory=session_factory, storage=storage)

    async def _cleanup(now: datetime) -> None:
        await cleanup_temp_artifacts(now, storage=storage)

    return [
        ScheduledJob(
            job_id=JOB_ID_RENEW_CONTRACTS,
            interval=timedelta(hours=settings.contract_renewal_interval_hours),
            handler=_renewal,
        ),
        ScheduledJob(
            job_id=JOB_ID_CLEANUP_TEMP,
            interval=timedelta(hours=settings.temp_cleanup_interval_hours),
            handler=_cleanup,
        ),
    ]
