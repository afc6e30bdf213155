"""
Pydantic domain schemas shared by the stores and engines.
"""

from src.schemas.common import Page
from src.schemas.curriculum import (
    GenerationContext,
    GenerationWarning,
    QuestDuration,
    SkillDistribution,
    StageDescription,
    UserLevel,
)
from src.schemas.skill import Milestone, Skill
from src.schemas.week_plan import DayPlan, WeekPlan, WeekProgressUpdate

__all__ = [
    "Page",
    "StageDescription",
    "QuestDuration",
    "SkillDistribution",
    "GenerationContext",
    "GenerationWarning",
    "UserLevel",
    "Skill",
    "Milestone",
    "DayPlan",
    "WeekPlan",
    "WeekProgressUpdate",
]
