"""
Skill model - one atomic, independently assessable competence.

Prerequisite and component ids are opaque foreign keys resolved through the
skill store, so they may point at skills of any quest of the same goal.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, TimestampMixin, VersionMixin, generate_uuid


class SkillType(str, Enum):
    """Composition depth of a skill."""

    FOUNDATION = "foundation"
    BUILDING = "building"
    COMPOUND = "compound"
    SYNTHESIS = "synthesis"


SKILL_TYPE_DEPTH = {
    SkillType.FOUNDATION: 0,
    SkillType.BUILDING: 1,
    SkillType.COMPOUND: 2,
    SkillType.SYNTHESIS: 3,
}


class SkillStatus(str, Enum):
    """Availability of a skill in the learner's path."""

    LOCKED = "locked"
    AVAILABLE = "available"
    IN_PROGRESS = "in_progress"
    MASTERED = "mastered"


class SkillMastery(str, Enum):
    """Evidence accumulated from drill outcomes."""

    NOT_STARTED = "not_started"
    ATTEMPTING = "attempting"  # never produced with practicing_threshold=1
    PRACTICING = "practicing"
    MASTERED = "mastered"


class SkillDifficulty(str, Enum):
    INTRO = "intro"
    PRACTICE = "practice"
    CHALLENGE = "challenge"
    SYNTHESIS = "synthesis"


class DrillOutcome(str, Enum):
    """Result of one practice session."""

    PASS = "pass"
    FAIL = "fail"
    PARTIAL = "partial"
    SKIPPED = "skipped"


ATTEMPTED_OUTCOMES = frozenset({DrillOutcome.PASS, DrillOutcome.FAIL, DrillOutcome.PARTIAL})


class SkillRow(Base, TimestampMixin, VersionMixin):
    """Persisted skill record."""

    __tablename__ = "skills"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    quest_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    goal_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)

    # Content
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    topic: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    topics: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    success_signal: Mapped[str] = mapped_column(Text, nullable=False)
    locked_variables: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    estimated_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    # Classification
    skill_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    depth: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    difficulty: Mapped[str] = mapped_column(String(20), nullable=False)
    is_compound: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    component_skill_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    component_quest_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    combination_context: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Graph
    prerequisite_skill_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    prerequisite_quest_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    # Scheduling ("order" is reserved in SQL)
    week_number: Mapped[int] = mapped_column(Integer, nullable=False)
    day_in_week: Mapped[int] = mapped_column(Integer, nullable=False)
    day_in_quest: Mapped[int] = mapped_column(Integer, nullable=False)
    order: Mapped[int] = mapped_column("sort_order", Integer, nullable=False)

    # Resilience layer from the stage's designed failure
    adversarial_element: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    failure_mode: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    recovery_steps: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    transfer_scenario: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_stage_title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    source_stage_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Lifecycle
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    mastery: Mapped[str] = mapped_column(String(20), nullable=False)
    pass_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fail_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    consecutive_passes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_outcome: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    unlocked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    mastered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_practiced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_skills_goal_status", "goal_id", "status"),
        Index("ix_skills_quest_order", "quest_id", "sort_order"),
    )
