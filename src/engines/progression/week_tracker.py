"""
Week Tracker - week plan lifecycle, progress aggregation and carry-forward.

Lifecycle: pending -> active -> completed (terminal). Completing a week
carries attempted-but-unfinished skills into a freshly generated next week,
ahead of new material.
"""

import uuid
from datetime import date, timedelta
from typing import List, Optional, Sequence

from pydantic import BaseModel

from src.config import Settings, get_settings
from src.engines.progression.unlock_service import UnlockService
from src.kernel.errors import InvalidStateError, NotFoundError, ProgressionError, StaleWriteError
from src.kernel.models.skill import SkillMastery, SkillStatus, SkillType
from src.kernel.models.week_plan import WeekPlanStatus
from src.kernel.stores.base import SkillStore, WeekPlanStore, fetch_all
from src.logging_config import get_logger
from src.schemas.skill import Skill
from src.schemas.week_plan import DayPlan, WeekPlan, WeekProgressUpdate

logger = get_logger(__name__)

GOOD_WEEK_PASS_RATE = 0.7
NEEDS_IMPROVEMENT_PASS_RATE = 0.5
REVIEW_THEME = "Review & Reinforce"


def _truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


class WeeklySummary(BaseModel):
    """Human-facing recap of one week."""

    week_plan_id: uuid.UUID
    week_number: int
    theme: str
    skills_mastered: List[str] = []
    skills_in_progress: List[str] = []
    cross_quest_skills: List[str] = []
    days_practiced: int = 0
    days_total: int = 0
    pass_rate: float = 0.0
    performance: str = "needs_improvement"
    milestone_available: bool = False


class WeekCompletionResult(BaseModel):
    """Everything produced by closing a week."""

    completed_week: WeekPlan
    carry_forward_skills: List[Skill] = []
    summary: WeeklySummary
    next_week_focus: str
    next_week: Optional[WeekPlan] = None
    milestone_available: bool = False


class WeekTracker:
    """
    Manages week plans for a goal.

    Week dates are contiguous: a follow-up week starts the day after the
    previous one ends and spans seven calendar days with
    practice_days_per_week practice slots.
    """

    def __init__(
        self,
        week_plan_store: WeekPlanStore,
        skill_store: SkillStore,
        unlock_service: Optional[UnlockService] = None,
        settings: Optional[Settings] = None,
    ):
        self.week_plan_store = week_plan_store
        self.skill_store = skill_store
        self.unlock_service = unlock_service
        self.settings = settings or get_settings()

    async def _require(self, week_plan_id: uuid.UUID) -> WeekPlan:
        plan = await self.week_plan_store.get(week_plan_id)
        if plan is None:
            raise NotFoundError("WeekPlan", week_plan_id)
        return plan

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_current_week(self, goal_id: uuid.UUID) -> Optional[WeekPlan]:
        return await self.week_plan_store.get_active_by_goal(goal_id)

    async def get_week_by_number(self, goal_id: uuid.UUID, week_number: int) -> Optional[WeekPlan]:
        return await self.week_plan_store.get_by_week_number(goal_id, week_number)

    async def get_all_weeks(self, goal_id: uuid.UUID) -> List[WeekPlan]:
        return await fetch_all(
            self.week_plan_store.get_by_goal, goal_id, page_size=self.settings.store_page_size
        )

    async def get_weekly_summary(self, week_plan_id: uuid.UUID) -> WeeklySummary:
        plan = await self._require(week_plan_id)
        skills = await self.skill_store.get_many(plan.all_skill_ids)
        return await self._build_summary(plan, skills)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start_quest(
        self,
        quest_id: uuid.UUID,
        start_date: date,
    ) -> WeekPlan:
        """
        Create the first week plan for a freshly generated quest from the
        skills scheduled in its first week. Activated unless the goal
        already has an active week; a pending plan becomes the next week
        when the active one completes.
        """
        skills = await fetch_all(
            self.skill_store.get_by_quest, quest_id, page_size=self.settings.store_page_size
        )
        if not skills:
            raise InvalidStateError(
                "Cannot start a quest without skills", {"quest_id": str(quest_id)}
            )
        first_week = min(s.week_number for s in skills)
        week_skills = [s for s in skills if s.week_number == first_week]
        total_weeks = len({s.week_number for s in skills})
        anchor = skills[0]

        plan = self._build_plan(
            goal_id=anchor.goal_id,
            user_id=anchor.user_id,
            quest_id=quest_id,
            week_number=first_week,
            week_in_quest=1,
            start_date=start_date,
            carry_forward=[],
            new_skills=week_skills[: self.settings.practice_days_per_week],
            is_first=True,
            is_last=total_weeks == 1,
        )
        plan = await self.week_plan_store.save(plan)
        logger.info(
            "Created week %d for quest start",
            plan.week_number,
            extra={"quest_id": str(quest_id), "week_plan_id": str(plan.id)},
        )
        if await self.week_plan_store.get_active_by_goal(plan.goal_id) is None:
            plan = await self.activate_week(plan.id)
        return plan

    async def activate_week(self, week_plan_id: uuid.UUID) -> WeekPlan:
        """pending -> active. No-op when already active; error when completed."""
        plan = await self._require(week_plan_id)
        if plan.status == WeekPlanStatus.ACTIVE:
            return plan
        if plan.status == WeekPlanStatus.COMPLETED:
            raise InvalidStateError(
                "Cannot activate a completed week", {"week_plan_id": str(week_plan_id)}
            )
        try:
            activated = await self.week_plan_store.update_status(
                week_plan_id, WeekPlanStatus.ACTIVE, expected_status=WeekPlanStatus.PENDING
            )
        except StaleWriteError:
            current = await self._require(week_plan_id)
            if current.status == WeekPlanStatus.ACTIVE:
                return current
            raise
        logger.info(
            "Activated week %d",
            activated.week_number,
            extra={"week_plan_id": str(week_plan_id), "goal_id": str(activated.goal_id)},
        )
        return activated

    async def update_progress(
        self,
        week_plan_id: uuid.UUID,
        update: WeekProgressUpdate,
    ) -> WeekPlan:
        """Add drill counter deltas onto the plan. Repeated calls accumulate."""
        await self._require(week_plan_id)
        return await self.week_plan_store.update_progress(
            week_plan_id,
            update.completed,
            update.passed,
            update.failed,
            update.skipped,
            update.mastered,
            completed_skill_ids=update.completed_skill_ids,
        )

    async def complete_week(self, week_plan_id: uuid.UUID) -> WeekCompletionResult:
        """
        Close the week, compute carry-forward and build the next week.

        Carry-forward skills are the week's skills that were attempted but
        not mastered. The status change is a compare-and-swap, so a week is
        completed at most once. It happens before the next week is built: if
        building fails the week stays completed and the error propagates; the
        host recovers by calling create_next_week with the stored week and
        its carry-forward.
        """
        plan = await self._require(week_plan_id)
        if plan.status == WeekPlanStatus.COMPLETED:
            raise InvalidStateError(
                "Week already completed", {"week_plan_id": str(week_plan_id)}
            )

        skills = await self.skill_store.get_many(plan.all_skill_ids)
        carry_forward = [
            s for s in skills
            if s.mastery not in (SkillMastery.MASTERED, SkillMastery.NOT_STARTED)
        ]
        focus = self._next_week_focus(carry_forward)
        summary = await self._build_summary(plan, skills)

        completed = await self.week_plan_store.update_status(
            week_plan_id,
            WeekPlanStatus.COMPLETED,
            expected_status=plan.status,
            next_week_focus=focus,
        )
        logger.info(
            "Completed week %d",
            completed.week_number,
            extra={
                "week_plan_id": str(week_plan_id),
                "carry_forward": len(carry_forward),
                "pass_rate": completed.pass_rate,
            },
        )

        try:
            next_week = await self.create_next_week(completed, carry_forward)
        except ProgressionError:
            logger.error(
                "Week %d completed but the next week could not be created",
                completed.week_number,
                extra={"week_plan_id": str(week_plan_id), "goal_id": str(completed.goal_id)},
            )
            raise
        return WeekCompletionResult(
            completed_week=completed,
            carry_forward_skills=carry_forward,
            summary=summary,
            next_week_focus=focus,
            next_week=next_week,
            milestone_available=summary.milestone_available,
        )

    async def create_next_week(
        self,
        completed_week: WeekPlan,
        carry_forward: Sequence[Skill],
    ) -> Optional[WeekPlan]:
        """
        Schedule the week after completed_week: carry-forward first, then
        up to (practice days - carry-forward) new skills of the goal in
        their existing order. Returns None when there is nothing left.

        A pending plan left by a quest started mid-week is taken over as the
        next week: its skills lead the new material and it is renumbered and
        redated to follow completed_week.
        """
        per_week = self.settings.practice_days_per_week
        goal_skills = await fetch_all(
            self.skill_store.get_by_goal,
            completed_week.goal_id,
            page_size=self.settings.store_page_size,
        )
        weeks = await self.get_all_weeks(completed_week.goal_id)
        waiting = [
            w for w in weeks
            if w.id != completed_week.id and w.status == WeekPlanStatus.PENDING
        ]
        adopted = waiting[0] if waiting else None

        taken = set(completed_week.scheduled_skill_ids)
        taken.update(completed_week.carry_forward_skill_ids)
        taken.update(completed_week.completed_skill_ids)
        for other in weeks:
            if other.id == completed_week.id or other.status == WeekPlanStatus.COMPLETED:
                continue
            if adopted is not None and other.id == adopted.id:
                continue
            taken.update(other.all_skill_ids)
        taken.update(s.id for s in carry_forward)

        pool = [
            s for s in goal_skills
            if s.id not in taken
            and s.mastery != SkillMastery.MASTERED
            and s.status != SkillStatus.MASTERED
        ]
        if adopted is not None:
            held = set(adopted.all_skill_ids)
            by_id = {s.id: s for s in pool if s.id in held}
            front = [by_id[i] for i in adopted.all_skill_ids if i in by_id]
            pool = front + [s for s in pool if s.id not in held]
        new_count = max(0, per_week - len(carry_forward))
        new_skills = pool[:new_count]

        if not carry_forward and not new_skills:
            logger.info(
                "No skills left to schedule after week %d",
                completed_week.week_number,
                extra={"goal_id": str(completed_week.goal_id)},
            )
            return None

        quest_id = completed_week.quest_id
        scheduled = [*carry_forward, *new_skills]
        if new_skills and not any(s.quest_id == quest_id for s in scheduled):
            quest_id = new_skills[0].quest_id
        same_quest = quest_id == completed_week.quest_id
        remaining_in_quest = [s for s in pool[new_count:] if s.quest_id == quest_id]

        plan = self._build_plan(
            goal_id=completed_week.goal_id,
            user_id=completed_week.user_id,
            quest_id=quest_id,
            week_number=completed_week.week_number + 1,
            week_in_quest=completed_week.week_in_quest + 1 if same_quest else 1,
            start_date=completed_week.end_date + timedelta(days=1),
            carry_forward=list(carry_forward),
            new_skills=new_skills,
            is_first=not same_quest,
            is_last=not remaining_in_quest,
        )
        if adopted is not None:
            plan = plan.model_copy(update={
                "id": adopted.id,
                "created_at": adopted.created_at,
                "version": adopted.version + 1,
            })
            logger.info(
                "Taking over pending week %d as week %d",
                adopted.week_number,
                plan.week_number,
                extra={"week_plan_id": str(adopted.id), "quest_id": str(adopted.quest_id)},
            )
        plan = await self.week_plan_store.save(plan)
        logger.info(
            "Generated week %d (%d carried, %d new)",
            plan.week_number,
            len(carry_forward),
            len(new_skills),
            extra={"week_plan_id": str(plan.id), "goal_id": str(plan.goal_id)},
        )
        return await self.activate_week(plan.id)

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    def _build_plan(
        self,
        *,
        goal_id: uuid.UUID,
        user_id: uuid.UUID,
        quest_id: uuid.UUID,
        week_number: int,
        week_in_quest: int,
        start_date: date,
        carry_forward: List[Skill],
        new_skills: List[Skill],
        is_first: bool,
        is_last: bool,
    ) -> WeekPlan:
        per_week = self.settings.practice_days_per_week
        ordered = [*carry_forward, *new_skills]
        carry_ids = {s.id for s in carry_forward}

        days = []
        for index in range(per_week):
            skill = ordered[index] if index < len(ordered) else None
            days.append(DayPlan(
                day_number=index + 1,
                scheduled_date=start_date + timedelta(days=index),
                skill_id=skill.id if skill else None,
                skill_type=skill.skill_type if skill else None,
                skill_title=skill.title if skill else "",
                is_carry_forward=bool(skill and skill.id in carry_ids),
            ))
        in_week = ordered[:per_week]

        if carry_forward:
            theme = REVIEW_THEME
        else:
            theme = f"Week {week_number}"
        if new_skills:
            competence = new_skills[0].action
        elif carry_forward:
            competence = carry_forward[0].action
        else:
            competence = "Continue practicing"

        return WeekPlan(
            goal_id=goal_id,
            user_id=user_id,
            quest_id=quest_id,
            week_number=week_number,
            week_in_quest=week_in_quest,
            is_first_week_of_quest=is_first,
            is_last_week_of_quest=is_last,
            start_date=start_date,
            end_date=start_date + timedelta(days=6),
            status=WeekPlanStatus.PENDING,
            theme=theme,
            weekly_competence=competence,
            days=days,
            scheduled_skill_ids=[s.id for s in new_skills],
            carry_forward_skill_ids=[s.id for s in carry_forward],
            foundation_count=sum(1 for s in in_week if s.skill_type == SkillType.FOUNDATION),
            building_count=sum(1 for s in in_week if s.skill_type == SkillType.BUILDING),
            compound_count=sum(1 for s in in_week if s.skill_type == SkillType.COMPOUND),
            has_synthesis=any(s.is_synthesis for s in in_week),
            drills_total=len(in_week),
        )

    @staticmethod
    def _next_week_focus(carry_forward: Sequence[Skill]) -> str:
        if not carry_forward:
            return "Ready to advance! No skills need review."
        if len(carry_forward) == 1:
            return f'Focus: Master "{_truncate(carry_forward[0].action, 50)}" before moving on.'
        names = ", ".join(_truncate(s.action, 30) for s in carry_forward[:3])
        return f"Focus: Complete {len(carry_forward)} skills from this week: {names}..."

    async def _build_summary(self, plan: WeekPlan, skills: Sequence[Skill]) -> WeeklySummary:
        pass_rate = plan.pass_rate
        if pass_rate >= GOOD_WEEK_PASS_RATE:
            performance = "strong"
        elif pass_rate >= NEEDS_IMPROVEMENT_PASS_RATE:
            performance = "steady"
        else:
            performance = "needs_improvement"

        milestone_available = False
        if self.unlock_service is not None:
            availability = await self.unlock_service.check_milestone_availability(plan.quest_id)
            milestone_available = availability.available

        return WeeklySummary(
            week_plan_id=plan.id,
            week_number=plan.week_number,
            theme=plan.theme or f"Week {plan.week_number}",
            skills_mastered=[s.title for s in skills if s.mastery == SkillMastery.MASTERED],
            skills_in_progress=[s.title for s in skills if s.mastery == SkillMastery.PRACTICING],
            cross_quest_skills=[s.title for s in skills if s.component_quest_ids],
            days_practiced=plan.drills_completed,
            days_total=plan.drills_total,
            pass_rate=pass_rate,
            performance=performance,
            milestone_available=milestone_available,
        )
