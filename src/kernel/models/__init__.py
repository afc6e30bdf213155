"""
Kernel Data Models

SQLAlchemy rows and lifecycle enums for skills, week plans and milestones.
"""

from src.kernel.models.base import Base, TimestampMixin, VersionMixin, generate_uuid, utcnow
from src.kernel.models.skill import (
    ATTEMPTED_OUTCOMES,
    SKILL_TYPE_DEPTH,
    DrillOutcome,
    SkillDifficulty,
    SkillMastery,
    SkillRow,
    SkillStatus,
    SkillType,
)
from src.kernel.models.week_plan import DayStatus, WeekPlanRow, WeekPlanStatus
from src.kernel.models.milestone import MilestoneRow, MilestoneStatus

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "VersionMixin",
    "generate_uuid",
    "utcnow",
    # Skill
    "SkillRow",
    "SkillType",
    "SkillStatus",
    "SkillMastery",
    "SkillDifficulty",
    "DrillOutcome",
    "ATTEMPTED_OUTCOMES",
    "SKILL_TYPE_DEPTH",
    # Week plan
    "WeekPlanRow",
    "WeekPlanStatus",
    "DayStatus",
    # Milestone
    "MilestoneRow",
    "MilestoneStatus",
]
