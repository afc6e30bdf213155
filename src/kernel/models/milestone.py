"""
Milestone model - the capstone deliverable paired 1:1 with a quest's synthesis skill.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import DateTime, Float, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, TimestampMixin, generate_uuid


class MilestoneStatus(str, Enum):
    LOCKED = "locked"
    AVAILABLE = "available"
    COMPLETED = "completed"


class MilestoneRow(Base, TimestampMixin):
    """Persisted milestone. One per quest."""

    __tablename__ = "milestones"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    quest_id: Mapped[uuid.UUID] = mapped_column(nullable=False, unique=True)
    goal_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    synthesis_skill_id: Mapped[uuid.UUID] = mapped_column(nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    artifact: Mapped[str] = mapped_column(Text, nullable=False)
    acceptance_criteria: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    estimated_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    required_mastery_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.75)

    status: Mapped[str] = mapped_column(String(20), nullable=False)
    unlocked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
