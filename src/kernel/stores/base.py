"""
Store contracts consumed by the progression engines.

Implementations must make conditional writes atomic: update() rejects a stale
version, update_status() is a compare-and-swap when expected_status is given,
and update_progress() increments counters in place.
"""

import uuid
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, TypeVar

from src.kernel.models.milestone import MilestoneStatus
from src.kernel.models.skill import DrillOutcome, SkillMastery, SkillStatus, SkillType
from src.kernel.models.week_plan import WeekPlanStatus
from src.schemas.common import Page
from src.schemas.skill import Milestone, Skill
from src.schemas.week_plan import WeekPlan

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 100


async def fetch_all(
    list_call: Callable[..., Awaitable[Page[T]]],
    *args,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> List[T]:
    """Walk every page of a store listing."""
    items: List[T] = []
    page = 1
    while True:
        result = await list_call(*args, page=page, page_size=page_size)
        items.extend(result.items)
        if not result.has_more:
            return items
        page += 1


class SkillStore(ABC):
    """Persistence contract for skills."""

    @abstractmethod
    async def get(self, skill_id: uuid.UUID) -> Optional[Skill]:
        ...

    async def get_many(self, skill_ids: Iterable[uuid.UUID]) -> List[Skill]:
        """Resolve ids in order, dropping misses."""
        found = []
        for skill_id in skill_ids:
            skill = await self.get(skill_id)
            if skill is not None:
                found.append(skill)
        return found

    @abstractmethod
    async def save(self, skill: Skill) -> Skill:
        """Insert or replace a skill as given (version untouched)."""

    async def save_batch(self, skills: Sequence[Skill]) -> List[Skill]:
        return [await self.save(skill) for skill in skills]

    @abstractmethod
    async def update(self, skill: Skill) -> Skill:
        """Replace a skill if its stored version equals skill.version; bumps version."""

    @abstractmethod
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
        """Write mastery counters. Stamps last_practiced_at, and mastered_at on entry into mastered."""

    @abstractmethod
    async def update_status(
        self,
        skill_id: uuid.UUID,
        status: SkillStatus,
        *,
        expected_status: Optional[SkillStatus] = None,
    ) -> Skill:
        """Set status, optionally only from expected_status. Stamps unlocked_at on entry into available."""

    @abstractmethod
    async def delete_by_quest(self, quest_id: uuid.UUID) -> int:
        ...

    @abstractmethod
    async def get_by_quest(
        self, quest_id: uuid.UUID, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Page[Skill]:
        ...

    @abstractmethod
    async def get_by_goal(
        self, goal_id: uuid.UUID, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Page[Skill]:
        ...

    @abstractmethod
    async def get_by_user(
        self, user_id: uuid.UUID, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Page[Skill]:
        ...

    @abstractmethod
    async def get_by_status(
        self,
        goal_id: uuid.UUID,
        status: SkillStatus,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Page[Skill]:
        ...

    @abstractmethod
    async def get_by_type(
        self,
        quest_id: uuid.UUID,
        skill_type: SkillType,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Page[Skill]:
        ...

    async def get_available(
        self, goal_id: uuid.UUID, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Page[Skill]:
        return await self.get_by_status(goal_id, SkillStatus.AVAILABLE, page, page_size)

    async def get_locked(
        self, goal_id: uuid.UUID, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Page[Skill]:
        return await self.get_by_status(goal_id, SkillStatus.LOCKED, page, page_size)


class WeekPlanStore(ABC):
    """Persistence contract for week plans."""

    @abstractmethod
    async def get(self, week_plan_id: uuid.UUID) -> Optional[WeekPlan]:
        ...

    @abstractmethod
    async def save(self, plan: WeekPlan) -> WeekPlan:
        ...

    @abstractmethod
    async def update_status(
        self,
        week_plan_id: uuid.UUID,
        status: WeekPlanStatus,
        *,
        expected_status: Optional[WeekPlanStatus] = None,
        next_week_focus: Optional[str] = None,
    ) -> WeekPlan:
        """Set status, optionally only from expected_status. Stamps activated_at / completed_at."""

    @abstractmethod
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
        """Add counter deltas in place."""

    @abstractmethod
    async def get_active_by_goal(self, goal_id: uuid.UUID) -> Optional[WeekPlan]:
        ...

    @abstractmethod
    async def get_by_week_number(self, goal_id: uuid.UUID, week_number: int) -> Optional[WeekPlan]:
        ...

    @abstractmethod
    async def get_by_goal(
        self, goal_id: uuid.UUID, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Page[WeekPlan]:
        ...


class MilestoneStore(ABC):
    """Persistence contract for quest milestones."""

    @abstractmethod
    async def get(self, milestone_id: uuid.UUID) -> Optional[Milestone]:
        ...

    @abstractmethod
    async def get_by_quest(self, quest_id: uuid.UUID) -> Optional[Milestone]:
        ...

    @abstractmethod
    async def save(self, milestone: Milestone) -> Milestone:
        ...

    @abstractmethod
    async def update_status(
        self,
        quest_id: uuid.UUID,
        status: MilestoneStatus,
        *,
        expected_status: Optional[MilestoneStatus] = None,
    ) -> Milestone:
        """Set status, optionally only from expected_status. Stamps unlocked_at / completed_at."""
