"""
Pydantic schemas for week plans and drill progress.
"""

import uuid
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field

from src.kernel.models.base import generate_uuid, utcnow
from src.kernel.models.skill import SkillType
from src.kernel.models.week_plan import DayStatus, WeekPlanStatus


class DayPlan(BaseModel):
    """One practice day. Empty slots carry no skill."""

    day_number: int
    scheduled_date: date
    skill_id: Optional[uuid.UUID] = None
    skill_type: Optional[SkillType] = None
    skill_title: str = ""
    is_carry_forward: bool = False
    status: DayStatus = DayStatus.PENDING


class WeekPlan(BaseModel):
    """A five-day scheduling window."""

    id: uuid.UUID = Field(default_factory=generate_uuid)
    goal_id: uuid.UUID
    user_id: uuid.UUID
    quest_id: uuid.UUID

    week_number: int
    week_in_quest: int = 1
    is_first_week_of_quest: bool = False
    is_last_week_of_quest: bool = False
    start_date: date
    end_date: date

    status: WeekPlanStatus = WeekPlanStatus.PENDING
    theme: str = ""
    weekly_competence: str = ""

    days: List[DayPlan] = []
    scheduled_skill_ids: List[uuid.UUID] = []
    carry_forward_skill_ids: List[uuid.UUID] = []
    completed_skill_ids: List[uuid.UUID] = []

    foundation_count: int = 0
    building_count: int = 0
    compound_count: int = 0
    has_synthesis: bool = False

    drills_total: int = 0
    drills_completed: int = 0
    drills_passed: int = 0
    drills_failed: int = 0
    drills_skipped: int = 0
    skills_mastered: int = 0

    next_week_focus: Optional[str] = None
    activated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 1

    @computed_field  # type: ignore[prop-decorator]
    @property
    def pass_rate(self) -> float:
        graded = self.drills_passed + self.drills_failed
        return self.drills_passed / graded if graded else 0.0

    @property
    def all_skill_ids(self) -> List[uuid.UUID]:
        """Carry-forward then scheduled ids, without duplicates."""
        seen = []
        for skill_id in [*self.carry_forward_skill_ids, *self.scheduled_skill_ids]:
            if skill_id not in seen:
                seen.append(skill_id)
        return seen


class WeekProgressUpdate(BaseModel):
    """Drill counter deltas to add onto a week plan."""

    completed: int = Field(default=0, ge=0)
    passed: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0)
    mastered: int = Field(default=0, ge=0)
    completed_skill_ids: List[uuid.UUID] = []
