"""
Pydantic schemas for the skill tree generator inputs and warnings.
"""

import uuid
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from src.kernel.errors import ErrorCode
from src.schemas.skill import Skill


class UserLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class StageDescription(BaseModel):
    """One ordered learning stage supplied by the content collaborator."""

    title: str
    capability: str
    artifact: str
    designed_failure: str = ""
    consequence: str = ""
    recovery: str = ""
    transfer: str = ""
    topics: List[str] = []


class QuestDuration(BaseModel):
    """How long a quest runs. Weeks are goal-relative and 1-based."""

    practice_days: int = Field(ge=1)
    week_start: int = Field(default=1, ge=1)
    week_end: int = Field(default=1, ge=1)
    unit: str = "days"
    value: int = 0
    display_label: str = ""

    @model_validator(mode="after")
    def _check_week_range(self) -> "QuestDuration":
        if self.week_end < self.week_start:
            raise ValueError("week_end must not precede week_start")
        return self


class SkillDistribution(BaseModel):
    """Share of non-synthesis slots per skill type; the remainder goes to building."""

    foundation_percent: float = Field(default=0.35, ge=0, le=1)
    building_percent: float = Field(default=0.25, ge=0, le=1)
    compound_percent: float = Field(default=0.30, ge=0, le=1)


class GenerationContext(BaseModel):
    """Everything the generator needs to build one quest's skill tree."""

    goal_id: uuid.UUID
    user_id: uuid.UUID
    quest_id: uuid.UUID
    quest_title: str
    stages: List[StageDescription]
    duration: QuestDuration
    daily_minutes: int = Field(default=30, ge=1)
    user_level: UserLevel = UserLevel.BEGINNER
    # Skills of earlier quests, resolvable through the skill store
    prior_skills: List[Skill] = []
    # When set, only prior skills of these quests are reused
    completed_quest_ids: List[uuid.UUID] = []
    distribution: Optional[SkillDistribution] = None


class GenerationWarning(BaseModel):
    """A non-fatal validation issue found while generating a tree."""

    code: ErrorCode = ErrorCode.VALIDATION
    skill_id: Optional[uuid.UUID] = None
    skill_title: str = ""
    message: str

