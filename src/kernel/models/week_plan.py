"""
WeekPlan model - a five-day scheduling window over a goal's skills.

Lifecycle: pending -> active -> completed (terminal).
"""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import Boolean, Date, DateTime, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, TimestampMixin, VersionMixin, generate_uuid


class WeekPlanStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


class DayStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class WeekPlanRow(Base, TimestampMixin, VersionMixin):
    """Persisted week plan. Day slots are stored as a JSON list."""

    __tablename__ = "week_plans"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    goal_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    quest_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)

    week_number: Mapped[int] = mapped_column(Integer, nullable=False)
    week_in_quest: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_first_week_of_quest: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_last_week_of_quest: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    theme: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    weekly_competence: Mapped[str] = mapped_column(Text, nullable=False, default="")

    days: Mapped[List[dict]] = mapped_column(JSON, nullable=False, default=list)
    scheduled_skill_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    carry_forward_skill_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    completed_skill_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    foundation_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    building_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    compound_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    has_synthesis: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    drills_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    drills_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    drills_passed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    drills_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    drills_skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skills_mastered: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    next_week_focus: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    activated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_week_plans_goal_week", "goal_id", "week_number"),
    )
