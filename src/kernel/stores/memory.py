"""
Dict-backed stores for tests and single-process hosts.

Every read and write copies the record, so callers never share mutable state
with the store. A per-store asyncio.Lock keeps conditional writes atomic.
"""

import asyncio
import uuid
from typing import Callable, Dict, List, Optional, Sequence

from src.kernel.errors import NotFoundError, StaleWriteError
from src.kernel.models.base import utcnow
from src.kernel.models.milestone import MilestoneStatus
from src.kernel.models.skill import DrillOutcome, SkillMastery, SkillStatus, SkillType
from src.kernel.models.week_plan import WeekPlanStatus
from src.kernel.stores.base import DEFAULT_PAGE_SIZE, MilestoneStore, SkillStore, WeekPlanStore
from src.schemas.common import Page
from src.schemas.skill import Milestone, Skill
from src.schemas.week_plan import WeekPlan


def _skill_sort_key(skill: Skill):
    return (skill.week_number, skill.order, skill.created_at)


class InMemorySkillStore(SkillStore):
    """Skill store over a plain dict."""

    def __init__(self) -> None:
        self._skills: Dict[uuid.UUID, Skill] = {}
        self._lock = asyncio.Lock()

    def _query(self, predicate: Callable[[Skill], bool], page: int, page_size: int) -> Page[Skill]:
        matches = sorted(
            (s for s in self._skills.values() if predicate(s)),
            key=_skill_sort_key,
        )
        return Page.slice([s.model_copy(deep=True) for s in matches], page, page_size)

    def _require(self, skill_id: uuid.UUID) -> Skill:
        current = self._skills.get(skill_id)
        if current is None:
            raise NotFoundError("Skill", skill_id)
        return current

    async def get(self, skill_id: uuid.UUID) -> Optional[Skill]:
        skill = self._skills.get(skill_id)
        return skill.model_copy(deep=True) if skill else None

    async def save(self, skill: Skill) -> Skill:
        async with self._lock:
            self._skills[skill.id] = skill.model_copy(deep=True)
        return skill.model_copy(deep=True)

    async def update(self, skill: Skill) -> Skill:
        async with self._lock:
            current = self._require(skill.id)
            if current.version != skill.version:
                raise StaleWriteError("Skill", skill.id, skill.version)
            stored = skill.model_copy(
                update={"version": skill.version + 1, "updated_at": utcnow()},
                deep=True,
            )
            self._skills[skill.id] = stored
            return stored.model_copy(deep=True)

    async def update_mastery(
        self,
        skill_id: uuid.UUID,
        mastery: SkillMastery,
        pass_count: int,
        fail_count: int,
        consecutive_passes: int,
        *,
        last_outcome: Optional[DrillOutcome] = None,
        expected_version: Optional[int] = None,
    ) -> Skill:
        async with self._lock:
            current = self._require(skill_id)
            if expected_version is not None and current.version != expected_version:
                raise StaleWriteError("Skill", skill_id, expected_version)
            now = utcnow()
            changes = {
                "mastery": mastery,
                "pass_count": pass_count,
                "fail_count": fail_count,
                "consecutive_passes": consecutive_passes,
                "last_practiced_at": now,
                "updated_at": now,
                "version": current.version + 1,
            }
            if last_outcome is not None:
                changes["last_outcome"] = last_outcome
            if mastery == SkillMastery.MASTERED and current.mastery != SkillMastery.MASTERED:
                changes["mastered_at"] = now
            stored = current.model_copy(update=changes, deep=True)
            self._skills[skill_id] = stored
            return stored.model_copy(deep=True)

    async def update_status(
        self,
        skill_id: uuid.UUID,
        status: SkillStatus,
        *,
        expected_status: Optional[SkillStatus] = None,
    ) -> Skill:
        async with self._lock:
            current = self._require(skill_id)
            if expected_status is not None and current.status != expected_status:
                raise StaleWriteError("Skill", skill_id, expected_status.value)
            now = utcnow()
            changes = {"status": status, "updated_at": now, "version": current.version + 1}
            if status == SkillStatus.AVAILABLE and current.unlocked_at is None:
                changes["unlocked_at"] = now
            stored = current.model_copy(update=changes, deep=True)
            self._skills[skill_id] = stored
            return stored.model_copy(deep=True)

    async def delete_by_quest(self, quest_id: uuid.UUID) -> int:
        async with self._lock:
            doomed = [sid for sid, s in self._skills.items() if s.quest_id == quest_id]
            for sid in doomed:
                del self._skills[sid]
            return len(doomed)

    async def get_by_quest(
        self, quest_id: uuid.UUID, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Page[Skill]:
        return self._query(lambda s: s.quest_id == quest_id, page, page_size)

    async def get_by_goal(
        self, goal_id: uuid.UUID, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Page[Skill]:
        return self._query(lambda s: s.goal_id == goal_id, page, page_size)

    async def get_by_user(
        self, user_id: uuid.UUID, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Page[Skill]:
        return self._query(lambda s: s.user_id == user_id, page, page_size)

    async def get_by_status(
        self,
        goal_id: uuid.UUID,
        status: SkillStatus,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Page[Skill]:
        return self._query(lambda s: s.goal_id == goal_id and s.status == status, page, page_size)

    async def get_by_type(
        self,
        quest_id: uuid.UUID,
        skill_type: SkillType,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Page[Skill]:
        return self._query(
            lambda s: s.quest_id == quest_id and s.skill_type == skill_type, page, page_size
        )


class InMemoryWeekPlanStore(WeekPlanStore):
    """Week plan store over a plain dict."""

    def __init__(self) -> None:
        self._plans: Dict[uuid.UUID, WeekPlan] = {}
        self._lock = asyncio.Lock()

    def _require(self, week_plan_id: uuid.UUID) -> WeekPlan:
        current = self._plans.get(week_plan_id)
        if current is None:
            raise NotFoundError("WeekPlan", week_plan_id)
        return current

    def _for_goal(self, goal_id: uuid.UUID) -> List[WeekPlan]:
        return sorted(
            (p for p in self._plans.values() if p.goal_id == goal_id),
            key=lambda p: (p.week_number, p.created_at),
        )

    async def get(self, week_plan_id: uuid.UUID) -> Optional[WeekPlan]:
        plan = self._plans.get(week_plan_id)
        return plan.model_copy(deep=True) if plan else None

    async def save(self, plan: WeekPlan) -> WeekPlan:
        async with self._lock:
            self._plans[plan.id] = plan.model_copy(deep=True)
        return plan.model_copy(deep=True)

    async def update_status(
        self,
        week_plan_id: uuid.UUID,
        status: WeekPlanStatus,
        *,
        expected_status: Optional[WeekPlanStatus] = None,
        next_week_focus: Optional[str] = None,
    ) -> WeekPlan:
        async with self._lock:
            current = self._require(week_plan_id)
            if expected_status is not None and current.status != expected_status:
                raise StaleWriteError("WeekPlan", week_plan_id, expected_status.value)
            now = utcnow()
            changes = {"status": status, "updated_at": now, "version": current.version + 1}
            if status == WeekPlanStatus.ACTIVE:
                changes["activated_at"] = now
            elif status == WeekPlanStatus.COMPLETED:
                changes["completed_at"] = now
            if next_week_focus is not None:
                changes["next_week_focus"] = next_week_focus
            stored = current.model_copy(update=changes, deep=True)
            self._plans[week_plan_id] = stored
            return stored.model_copy(deep=True)

    async def update_progress(
        self,
        week_plan_id: uuid.UUID,
        completed: int,
        passed: int,
        failed: int,
        skipped: int,
        mastered_delta: int,
        *,
        completed_skill_ids: Sequence[uuid.UUID] = (),
    ) -> WeekPlan:
        async with self._lock:
            current = self._require(week_plan_id)
            done = list(current.completed_skill_ids)
            done.extend(sid for sid in completed_skill_ids if sid not in done)
            stored = current.model_copy(
                update={
                    "drills_completed": current.drills_completed + completed,
                    "drills_passed": current.drills_passed + passed,
                    "drills_failed": current.drills_failed + failed,
                    "drills_skipped": current.drills_skipped + skipped,
                    "skills_mastered": current.skills_mastered + mastered_delta,
                    "completed_skill_ids": done,
                    "updated_at": utcnow(),
                    "version": current.version + 1,
                },
                deep=True,
            )
            self._plans[week_plan_id] = stored
            return stored.model_copy(deep=True)

    async def get_active_by_goal(self, goal_id: uuid.UUID) -> Optional[WeekPlan]:
        for plan in self._for_goal(goal_id):
            if plan.status == WeekPlanStatus.ACTIVE:
                return plan.model_copy(deep=True)
        return None

    async def get_by_week_number(self, goal_id: uuid.UUID, week_number: int) -> Optional[WeekPlan]:
        for plan in self._for_goal(goal_id):
            if plan.week_number == week_number:
                return plan.model_copy(deep=True)
        return None

    async def get_by_goal(
        self, goal_id: uuid.UUID, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Page[WeekPlan]:
        plans = [p.model_copy(deep=True) for p in self._for_goal(goal_id)]
        return Page.slice(plans, page, page_size)


class InMemoryMilestoneStore(MilestoneStore):
    """Milestone store over a plain dict, keyed by milestone id."""

    def __init__(self) -> None:
        self._milestones: Dict[uuid.UUID, Milestone] = {}
        self._lock = asyncio.Lock()

    def _find_by_quest(self, quest_id: uuid.UUID) -> Optional[Milestone]:
        for milestone in self._milestones.values():
            if milestone.quest_id == quest_id:
                return milestone
        return None

    async def get(self, milestone_id: uuid.UUID) -> Optional[Milestone]:
        milestone = self._milestones.get(milestone_id)
        return milestone.model_copy(deep=True) if milestone else None

    async def get_by_quest(self, quest_id: uuid.UUID) -> Optional[Milestone]:
        milestone = self._find_by_quest(quest_id)
        return milestone.model_copy(deep=True) if milestone else None

    async def save(self, milestone: Milestone) -> Milestone:
        async with self._lock:
            self._milestones[milestone.id] = milestone.model_copy(deep=True)
        return milestone.model_copy(deep=True)

    async def update_status(
        self,
        quest_id: uuid.UUID,
        status: MilestoneStatus,
        *,
        expected_status: Optional[MilestoneStatus] = None,
    ) -> Milestone:
        async with self._lock:
            current = self._find_by_quest(quest_id)
            if current is None:
                raise NotFoundError("Milestone", quest_id)
            if expected_status is not None and current.status != expected_status:
                raise StaleWriteError("Milestone", quest_id, expected_status.value)
            now = utcnow()
            changes = {"status": status, "updated_at": now}
            if status == MilestoneStatus.AVAILABLE and current.unlocked_at is None:
                changes["unlocked_at"] = now
            elif status == MilestoneStatus.COMPLETED:
                changes["completed_at"] = now
            stored = current.model_copy(update=changes, deep=True)
            self._milestones[stored.id] = stored
            return stored.model_copy(deep=True)
