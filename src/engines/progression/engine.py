"""
Progression Engine - wires the generator and services over one set of stores.
"""

import uuid
from datetime import date
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import Settings, get_settings
from src.engines.progression.mastery_service import MasteryService, MasterySummary, OutcomeResult
from src.engines.progression.skill_tree_generator import GenerationResult, SkillTreeGenerator
from src.engines.progression.unlock_service import UnlockService
from src.engines.progression.week_tracker import WeekCompletionResult, WeekTracker
from src.kernel.models.skill import ATTEMPTED_OUTCOMES, DrillOutcome, SkillMastery
from src.kernel.stores.base import MilestoneStore, SkillStore, WeekPlanStore
from src.kernel.stores.memory import (
    InMemoryMilestoneStore,
    InMemorySkillStore,
    InMemoryWeekPlanStore,
)
from src.kernel.stores.sql import SqlMilestoneStore, SqlSkillStore, SqlWeekPlanStore
from src.logging_config import get_logger
from src.schemas.curriculum import GenerationContext
from src.schemas.week_plan import WeekPlan, WeekProgressUpdate

logger = get_logger(__name__)


class QuestStart(BaseModel):
    """A generated and persisted quest with its first week."""

    generation: GenerationResult
    first_week: WeekPlan


class DrillRecord(BaseModel):
    """Mastery and week effects of one drill."""

    outcome: OutcomeResult
    week: Optional[WeekPlan] = None


class ProgressionEngine:
    """Host-facing entry point; holds no state beyond its stores."""

    def __init__(
        self,
        skill_store: SkillStore,
        week_plan_store: WeekPlanStore,
        milestone_store: Optional[MilestoneStore] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.skill_store = skill_store
        self.milestone_store = milestone_store
        self.generator = SkillTreeGenerator(self.settings)
        self.unlock = UnlockService(skill_store, milestone_store, self.settings)
        self.mastery = MasteryService(skill_store, self.unlock, self.settings)
        self.weeks = WeekTracker(week_plan_store, skill_store, self.unlock, self.settings)

    @classmethod
    def in_memory(cls, settings: Optional[Settings] = None) -> "ProgressionEngine":
        return cls(
            InMemorySkillStore(),
            InMemoryWeekPlanStore(),
            InMemoryMilestoneStore(),
            settings,
        )

    @classmethod
    def for_session(cls, session: AsyncSession, settings: Optional[Settings] = None) -> "ProgressionEngine":
        return cls(
            SqlSkillStore(session),
            SqlWeekPlanStore(session),
            SqlMilestoneStore(session),
            settings,
        )

    async def initialize_quest(self, context: GenerationContext, start_date: date) -> QuestStart:
        """Generate the quest tree, persist it with its milestone, open the first week."""
        generation = self.generator.generate(context)
        await self.skill_store.save_batch(generation.skills)
        if self.milestone_store is not None:
            await self.milestone_store.save(generation.milestone)
        first_week = await self.weeks.start_quest(context.quest_id, start_date)
        return QuestStart(generation=generation, first_week=first_week)

    async def record_drill(
        self,
        skill_id: uuid.UUID,
        outcome: DrillOutcome,
        week_plan_id: Optional[uuid.UUID] = None,
    ) -> DrillRecord:
        """Record a drill on the skill and, when given, on the week's counters."""
        result = await self.mastery.record_outcome(skill_id, outcome)
        week = None
        if week_plan_id is not None:
            update = WeekProgressUpdate(
                completed=1 if outcome in ATTEMPTED_OUTCOMES else 0,
                passed=1 if outcome == DrillOutcome.PASS else 0,
                failed=1 if outcome == DrillOutcome.FAIL else 0,
                skipped=1 if outcome == DrillOutcome.SKIPPED else 0,
                mastered=1 if result.became_mastered else 0,
                completed_skill_ids=[skill_id] if result.new_mastery == SkillMastery.MASTERED else [],
            )
            week = await self.weeks.update_progress(week_plan_id, update)
        return DrillRecord(outcome=result, week=week)

    async def complete_week(self, week_plan_id: uuid.UUID) -> WeekCompletionResult:
        return await self.weeks.complete_week(week_plan_id)

    async def get_progress(self, goal_id: uuid.UUID) -> MasterySummary:
        return await self.mastery.get_mastery_summary(goal_id)
