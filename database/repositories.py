"""
Repository Pattern for Vetting Result Storage

Provides clean data access layer with proper typing and error handling.
Rows are append-only; the latest row per EIN is the cached verdict.
"""

import logging
import re
from datetime import date, datetime, timezone
from typing import List, Optional, Dict, Union

from sqlalchemy import select, func
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from database.models import VettingResultRecord
from profile_utils import clean_ein
from vetting_errors import InvalidArgumentError
from vetting_types import CachedVetting, Recommendation, VettingResult

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 20
MAX_LIST_LIMIT = 100

_ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}")


class RepositoryError(Exception):
    """Base exception for repository errors."""
    pass


class EntityNotFoundError(RepositoryError):
    """Raised when an entity is not found."""
    pass


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops the offset) and convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_since(since: Union[str, date, datetime, None]) -> Optional[datetime]:
    """
    Parse a lower bound for list_vetted.

    Args:
        since: ISO date ("2024-01-31"), ISO datetime, date or datetime

    Returns:
        UTC datetime, or None when no bound was given

    Raises:
        InvalidArgumentError: If a string bound is not an ISO date
    """
    if since is None:
        return None
    if isinstance(since, datetime):
        return ensure_utc(since)
    if isinstance(since, date):
        return datetime(since.year, since.month, since.day, tzinfo=timezone.utc)

    text = str(since).strip()
    if not _ISO_DATE_PATTERN.match(text):
        raise InvalidArgumentError(
            f"Invalid date format for 'since': {since!r}",
            field="since",
            code="INVALID_DATE",
            suggestion="Use ISO format, e.g. 2024-01-31",
        )
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        raise InvalidArgumentError(
            f"Invalid date for 'since': {since!r}",
            field="since",
            code="INVALID_DATE",
            suggestion="Use ISO format, e.g. 2024-01-31",
        )
    return ensure_utc(parsed)


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return DEFAULT_LIST_LIMIT
    return max(1, min(int(limit), MAX_LIST_LIMIT))


# ============================================
# VETTING RESULT REPOSITORY
# ============================================

class VettingResultRepository:
    """Repository for persisted vetting verdicts."""

    def __init__(self, session: Session):
        self.session = session

    def save_result(
        self,
        result: VettingResult,
        vetted_by: str = "vetting-engine",
        vetted_at: Optional[datetime] = None
    ) -> VettingResultRecord:
        """
        Insert a vetting verdict.

        Args:
            result: Completed vetting result
            vetted_by: Who requested the run
            vetted_at: Timestamp of the run (defaults to now, UTC)

        Returns:
            Created VettingResultRecord

        Raises:
            RepositoryError: If the insert fails
        """
        try:
            record = VettingResultRecord(
                ein=clean_ein(result.ein),
                name=result.name,
                recommendation=result.recommendation,
                score=result.score,
                passed=result.passed,
                gate_blocked=result.gate_blocked,
                red_flag_count=len(result.red_flags),
                result_json=result.to_dict(),
                vetted_at=ensure_utc(vetted_at or datetime.now(timezone.utc)),
                vetted_by=vetted_by
            )
            self.session.add(record)
            self.session.flush()

            logger.debug(f"Saved vetting result {record.id} for EIN {record.ein}")
            return record

        except SQLAlchemyError as e:
            self.session.rollback()
            raise RepositoryError(f"Failed to save vetting result: {e}")

    def get_by_id(self, record_id: int) -> VettingResultRecord:
        """
        Get a stored verdict by ID.

        Raises:
            EntityNotFoundError: If no row has this ID
        """
        record = self.session.get(VettingResultRecord, record_id)
        if record is None:
            raise EntityNotFoundError(f"Vetting result {record_id} not found")
        return record

    def get_latest_by_ein(self, ein: str) -> Optional[VettingResultRecord]:
        """Most recent verdict for an EIN (by vetted_at, then id)."""
        query = (
            select(VettingResultRecord)
            .where(VettingResultRecord.ein == clean_ein(ein))
            .order_by(VettingResultRecord.vetted_at.desc(), VettingResultRecord.id.desc())
            .limit(1)
        )
        return self.session.execute(query).scalar_one_or_none()

    def list_vetted(
        self,
        recommendation: Optional[Union[Recommendation, str]] = None,
        since: Union[str, date, datetime, None] = None,
        limit: Optional[int] = DEFAULT_LIST_LIMIT
    ) -> List[VettingResultRecord]:
        """
        List stored verdicts, newest first.

        Args:
            recommendation: Only rows with this recommendation
            since: Only rows vetted at or after this ISO date
            limit: Maximum rows, clamped to 1..100

        Raises:
            InvalidArgumentError: If since or recommendation is malformed
        """
        query = select(VettingResultRecord)

        if recommendation is not None:
            try:
                recommendation = Recommendation(recommendation)
            except ValueError:
                raise InvalidArgumentError(
                    f"Unknown recommendation: {recommendation!r}",
                    field="recommendation",
                    suggestion="Use PASS, REVIEW or REJECT",
                )
            query = query.where(VettingResultRecord.recommendation == recommendation)

        since_dt = parse_since(since)
        if since_dt is not None:
            query = query.where(VettingResultRecord.vetted_at >= since_dt)

        query = query.order_by(
            VettingResultRecord.vetted_at.desc(),
            VettingResultRecord.id.desc()
        ).limit(clamp_limit(limit))

        return list(self.session.execute(query).scalars().all())

    def get_stats(self) -> Dict[str, int]:
        """Row counts overall and per recommendation."""
        query = (
            select(VettingResultRecord.recommendation, func.count(VettingResultRecord.id))
            .group_by(VettingResultRecord.recommendation)
        )
        counts = {rec: count for rec, count in self.session.execute(query).all()}

        return {
            'total': sum(counts.values()),
            'pass': counts.get(Recommendation.PASS, 0),
            'review': counts.get(Recommendation.REVIEW, 0),
            'reject': counts.get(Recommendation.REJECT, 0),
        }

    @staticmethod
    def to_cached(record: VettingResultRecord) -> CachedVetting:
        """Rebuild the domain verdict from a stored row."""
        return CachedVetting(
            result=VettingResult.from_dict(record.result_json),
            vetted_at=ensure_utc(record.vetted_at),
            vetted_by=record.vetted_by,
            record_id=record.id
        )
