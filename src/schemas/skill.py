"""
Pydantic schemas for skills and milestones.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from src.kernel.models.base import generate_uuid, utcnow
from src.kernel.models.milestone import MilestoneStatus
from src.kernel.models.skill import (
    DrillOutcome,
    SkillDifficulty,
    SkillMastery,
    SkillStatus,
    SkillType,
)


class Skill(BaseModel):
    """An atomic, independently assessable competence."""

    id: uuid.UUID = Field(default_factory=generate_uuid)
    quest_id: uuid.UUID
    goal_id: uuid.UUID
    user_id: uuid.UUID

    title: str
    topic: str = ""
    topics: List[str] = []
    action: str
    success_signal: str
    locked_variables: List[str] = []
    estimated_minutes: int

    skill_type: SkillType
    depth: int = 0
    difficulty: SkillDifficulty = SkillDifficulty.INTRO
    is_compound: bool = False
    component_skill_ids: List[uuid.UUID] = []
    component_quest_ids: List[uuid.UUID] = []
    combination_context: Optional[str] = None

    prerequisite_skill_ids: List[uuid.UUID] = []
    prerequisite_quest_ids: List[uuid.UUID] = []

    week_number: int = 1
    day_in_week: int = 1
    day_in_quest: int = 1
    order: int = 1

    adversarial_element: Optional[str] = None
    failure_mode: Optional[str] = None
    recovery_steps: Optional[str] = None
    transfer_scenario: Optional[str] = None
    source_stage_title: Optional[str] = None
    source_stage_index: Optional[int] = None

    status: SkillStatus = SkillStatus.LOCKED
    mastery: SkillMastery = SkillMastery.NOT_STARTED
    pass_count: int = 0
    fail_count: int = 0
    consecutive_passes: int = 0
    last_outcome: Optional[DrillOutcome] = None
    unlocked_at: Optional[datetime] = None
    mastered_at: Optional[datetime] = None
    last_practiced_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 1

    @property
    def is_synthesis(self) -> bool:
        return self.skill_type == SkillType.SYNTHESIS


class Milestone(BaseModel):
    """Capstone deliverable of a quest, paired with its synthesis skill."""

    id: uuid.UUID = Field(default_factory=generate_uuid)
    quest_id: uuid.UUID
    goal_id: uuid.UUID
    synthesis_skill_id: uuid.UUID
    title: str
    description: str
    artifact: str
    acceptance_criteria: List[str] = []
    estimated_minutes: int
    required_mastery_percent: float = 0.75
    status: MilestoneStatus = MilestoneStatus.LOCKED
    unlocked_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
