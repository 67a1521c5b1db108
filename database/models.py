"""
SQLAlchemy ORM Models for the Nonprofit Vetting Engine

Tables:
1. vetting_results - Append-only log of vetting verdicts. Each run inserts a
   row; the latest row per EIN (by vetted_at, then id) is the cached verdict.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean, CheckConstraint, DateTime, Enum, Index, Integer, JSON, String,
)
from sqlalchemy.orm import declarative_base, Mapped, mapped_column
from sqlalchemy.sql import func

from vetting_types import Recommendation

# Base class for all models
Base = declarative_base()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================
# MIXIN CLASSES
# ============================================

class TimestampMixin:
    """Mixin for created_at timestamp"""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )


# ============================================
# VETTING MODELS
# ============================================

class VettingResultRecord(Base, TimestampMixin):
    """
    One persisted vetting verdict.

    Rows are never updated: a later run for the same EIN supersedes an
    earlier one by inserting a newer row.
    """
    __tablename__ = "vetting_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    ein: Mapped[str] = mapped_column(String(9), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)

    recommendation: Mapped[Recommendation] = mapped_column(
        Enum(Recommendation, name="vetting_recommendation"),
        nullable=False,
        index=True
    )
    score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    gate_blocked: Mapped[bool] = mapped_column(Boolean, nullable=False)
    red_flag_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Full VettingResult.to_dict()
    result_json: Mapped[dict] = mapped_column(JSON, nullable=False)

    vetted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
        index=True
    )
    vetted_by: Mapped[str] = mapped_column(String(200), nullable=False, default="vetting-engine")

    __table_args__ = (
        Index('ix_vetting_result_ein_vetted_at', 'ein', 'vetted_at'),
        CheckConstraint('score IS NULL OR (score >= 0 AND score <= 100)', name='ck_vetting_score_range'),
        CheckConstraint('red_flag_count >= 0', name='ck_vetting_red_flag_count'),
    )

    def __repr__(self) -> str:
        return (f"<VettingResultRecord(id={self.id}, ein={self.ein}, "
                f"recommendation={self.recommendation}, vetted_at={self.vetted_at})>")
