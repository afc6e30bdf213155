"""
SQLAlchemy-backed stores (DB-backed).

Stores flush but never commit; the caller owns the transaction. Conditional
writes are single UPDATE statements guarded on version or status, and a
zero rowcount is reported as NotFoundError or StaleWriteError.
"""

import uuid
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pydantic import BaseModel
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.errors import NotFoundError, StaleWriteError, StoreFailureError
from src.kernel.models.base import as_aware, utcnow
from src.kernel.models.milestone import MilestoneRow, MilestoneStatus
from src.kernel.models.skill import DrillOutcome, SkillMastery, SkillRow, SkillStatus, SkillType
from src.kernel.models.week_plan import WeekPlanRow, WeekPlanStatus
from src.kernel.stores.base import DEFAULT_PAGE_SIZE, MilestoneStore, SkillStore, WeekPlanStore
from src.logging_config import get_logger
from src.schemas.common import Page
from src.schemas.skill import Milestone, Skill
from src.schemas.week_plan import WeekPlan

logger = get_logger(__name__)

_SKILL_UUID_LISTS = (
    "component_skill_ids",
    "component_quest_ids",
    "prerequisite_skill_ids",
    "prerequisite_quest_ids",
)
_PLAN_UUID_LISTS = ("scheduled_skill_ids", "carry_forward_skill_ids", "completed_skill_ids")
_DATETIME_FIELDS = (
    "unlocked_at",
    "mastered_at",
    "last_practiced_at",
    "activated_at",
    "completed_at",
    "created_at",
    "updated_at",
)


def _to_values(model: BaseModel, uuid_lists: Iterable[str] = (), exclude=None) -> Dict[str, Any]:
    """Flatten a pydantic model into column values."""
    values = model.model_dump(exclude=exclude)
    for key, value in values.items():
        if isinstance(value, Enum):
            values[key] = value.value
    for key in uuid_lists:
        values[key] = [str(v) for v in values[key]]
    return values


def _from_row(row: Any) -> Dict[str, Any]:
    data = {attr.key: getattr(row, attr.key) for attr in row.__mapper__.column_attrs}
    for key in _DATETIME_FIELDS:
        if key in data:
            data[key] = as_aware(data[key])
    return data


def _row_to_skill(row: SkillRow) -> Skill:
    return Skill.model_validate(_from_row(row))


def _row_to_plan(row: WeekPlanRow) -> WeekPlan:
    return WeekPlan.model_validate(_from_row(row))


def _row_to_milestone(row: MilestoneRow) -> Milestone:
    return Milestone.model_validate(_from_row(row))


def _plan_values(plan: WeekPlan) -> Dict[str, Any]:
    values = _to_values(plan, _PLAN_UUID_LISTS, exclude={"pass_rate", "days"})
    values["days"] = plan.model_dump(mode="json", include={"days"})["days"]
    return values


class _SqlStore:
    """Shared session plumbing; wraps backend errors as StoreFailureError."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _execute(self, stmt):
        try:
            return await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise StoreFailureError(str(exc), {"backend": type(exc).__name__}) from exc

    async def _merge(self, row) -> None:
        try:
            await self.session.merge(row)
            await self.session.flush()
        except SQLAlchemyError as exc:
            raise StoreFailureError(str(exc), {"backend": type(exc).__name__}) from exc

    async def _page(self, model, stmt, order_by, page: int, page_size: int) -> Page:
        total = (await self._execute(
            select(func.count()).select_from(stmt.subquery())
        )).scalar_one()
        result = await self._execute(
            stmt.order_by(*order_by)
            .offset((page - 1) * page_size)
            .limit(page_size)
            .execution_options(populate_existing=True)
        )
        return Page.create([model(row) for row in result.scalars().all()], total, page, page_size)


class SqlSkillStore(_SqlStore, SkillStore):
    """Skill store over an AsyncSession."""

    async def _get_row(self, skill_id: uuid.UUID) -> Optional[SkillRow]:
        result = await self._execute(
            select(SkillRow)
            .where(SkillRow.id == skill_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _guarded_update(self, skill_id: uuid.UUID, conditions, values, expected) -> Skill:
        stmt = (
            update(SkillRow)
            .where(SkillRow.id == skill_id, *conditions)
            .values({getattr(SkillRow, key): value for key, value in values.items()})
            .execution_options(synchronize_session=False)
        )
        result = await self._execute(stmt)
        row = await self._get_row(skill_id)
        if row is None:
            raise NotFoundError("Skill", skill_id)
        if result.rowcount == 0:
            raise StaleWriteError("Skill", skill_id, expected)
        return _row_to_skill(row)

    async def _list(self, page: int, page_size: int, *conditions) -> Page[Skill]:
        stmt = select(SkillRow).where(*conditions)
        return await self._page(
            _row_to_skill,
            stmt,
            (SkillRow.week_number, SkillRow.order, SkillRow.created_at),
            page,
            page_size,
        )

    async def get(self, skill_id: uuid.UUID) -> Optional[Skill]:
        row = await self._get_row(skill_id)
        return _row_to_skill(row) if row else None

    async def save(self, skill: Skill) -> Skill:
        await self._merge(SkillRow(**_to_values(skill, _SKILL_UUID_LISTS)))
        return skill.model_copy(deep=True)

    async def update(self, skill: Skill) -> Skill:
        values = _to_values(skill, _SKILL_UUID_LISTS, exclude={"id", "created_at"})
        values["version"] = skill.version + 1
        values["updated_at"] = utcnow()
        return await self._guarded_update(
            skill.id, [SkillRow.version == skill.version], values, skill.version
        )

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
        row = await self._get_row(skill_id)
        if row is None:
            raise NotFoundError("Skill", skill_id)
        guard = expected_version if expected_version is not None else row.version
        now = utcnow()
        values: Dict[str, Any] = {
            "mastery": mastery.value,
            "pass_count": pass_count,
            "fail_count": fail_count,
            "consecutive_passes": consecutive_passes,
            "last_practiced_at": now,
            "updated_at": now,
            "version": guard + 1,
        }
        if last_outcome is not None:
            values["last_outcome"] = last_outcome.value
        if mastery == SkillMastery.MASTERED and row.mastery != SkillMastery.MASTERED.value:
            values["mastered_at"] = now
        return await self._guarded_update(skill_id, [SkillRow.version == guard], values, guard)

    async def update_status(
        self,
        skill_id: uuid.UUID,
        status: SkillStatus,
        *,
        expected_status: Optional[SkillStatus] = None,
    ) -> Skill:
        now = utcnow()
        values: Dict[str, Any] = {
            "status": status.value,
            "updated_at": now,
            "version": SkillRow.version + 1,
        }
        if status == SkillStatus.AVAILABLE:
            values["unlocked_at"] = case(
                (SkillRow.unlocked_at.is_(None), now), else_=SkillRow.unlocked_at
            )
        conditions = []
        if expected_status is not None:
            conditions.append(SkillRow.status == expected_status.value)
        return await self._guarded_update(
            skill_id, conditions, values, expected_status.value if expected_status else None
        )

    async def delete_by_quest(self, quest_id: uuid.UUID) -> int:
        result = await self._execute(
            delete(SkillRow)
            .where(SkillRow.quest_id == quest_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def get_by_quest(
        self, quest_id: uuid.UUID, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Page[Skill]:
        return await self._list(page, page_size, SkillRow.quest_id == quest_id)

    async def get_by_goal(
        self, goal_id: uuid.UUID, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Page[Skill]:
        return await self._list(page, page_size, SkillRow.goal_id == goal_id)

    async def get_by_user(
        self, user_id: uuid.UUID, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Page[Skill]:
        return await self._list(page, page_size, SkillRow.user_id == user_id)

    async def get_by_status(
        self,
        goal_id: uuid.UUID,
        status: SkillStatus,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Page[Skill]:
        return await self._list(
            page, page_size, SkillRow.goal_id == goal_id, SkillRow.status == status.value
        )

    async def get_by_type(
        self,
        quest_id: uuid.UUID,
        skill_type: SkillType,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Page[Skill]:
        return await self._list(
            page, page_size, SkillRow.quest_id == quest_id, SkillRow.skill_type == skill_type.value
        )


class SqlWeekPlanStore(_SqlStore, WeekPlanStore):
    """Week plan store over an AsyncSession."""

    async def _get_row(self, week_plan_id: uuid.UUID) -> Optional[WeekPlanRow]:
        result = await self._execute(
            select(WeekPlanRow)
            .where(WeekPlanRow.id == week_plan_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _first(self, *conditions) -> Optional[WeekPlan]:
        result = await self._execute(
            select(WeekPlanRow)
            .where(*conditions)
            .order_by(WeekPlanRow.week_number, WeekPlanRow.created_at)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return _row_to_plan(row) if row else None

    async def _guarded_update(self, week_plan_id, conditions, values, expected) -> WeekPlan:
        result = await self._execute(
            update(WeekPlanRow)
            .where(WeekPlanRow.id == week_plan_id, *conditions)
            .values({getattr(WeekPlanRow, key): value for key, value in values.items()})
            .execution_options(synchronize_session=False)
        )
        row = await self._get_row(week_plan_id)
        if row is None:
            raise NotFoundError("WeekPlan", week_plan_id)
        if result.rowcount == 0:
            raise StaleWriteError("WeekPlan", week_plan_id, expected)
        return _row_to_plan(row)

    async def get(self, week_plan_id: uuid.UUID) -> Optional[WeekPlan]:
        row = await self._get_row(week_plan_id)
        return _row_to_plan(row) if row else None

    async def save(self, plan: WeekPlan) -> WeekPlan:
        await self._merge(WeekPlanRow(**_plan_values(plan)))
        return plan.model_copy(deep=True)

    async def update_status(
        self,
        week_plan_id: uuid.UUID,
        status: WeekPlanStatus,
        *,
        expected_status: Optional[WeekPlanStatus] = None,
        next_week_focus: Optional[str] = None,
    ) -> WeekPlan:
        now = utcnow()
        values: Dict[str, Any] = {
            "status": status.value,
            "updated_at": now,
            "version": WeekPlanRow.version + 1,
        }
        if status == WeekPlanStatus.ACTIVE:
            values["activated_at"] = now
        elif status == WeekPlanStatus.COMPLETED:
            values["completed_at"] = now
        if next_week_focus is not None:
            values["next_week_focus"] = next_week_focus
        conditions = []
        if expected_status is not None:
            conditions.append(WeekPlanRow.status == expected_status.value)
        return await self._guarded_update(
            week_plan_id, conditions, values, expected_status.value if expected_status else None
        )

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
        values: Dict[str, Any] = {
            "drills_completed": WeekPlanRow.drills_completed + completed,
            "drills_passed": WeekPlanRow.drills_passed + passed,
            "drills_failed": WeekPlanRow.drills_failed + failed,
            "drills_skipped": WeekPlanRow.drills_skipped + skipped,
            "skills_mastered": WeekPlanRow.skills_mastered + mastered_delta,
            "updated_at": utcnow(),
            "version": WeekPlanRow.version + 1,
        }
        conditions = []
        if completed_skill_ids:
            # JSON list merge needs the current value, so guard on version
            row = await self._get_row(week_plan_id)
            if row is None:
                raise NotFoundError("WeekPlan", week_plan_id)
            done: List[str] = list(row.completed_skill_ids)
            done.extend(str(sid) for sid in completed_skill_ids if str(sid) not in done)
            values["completed_skill_ids"] = done
            conditions.append(WeekPlanRow.version == row.version)
        return await self._guarded_update(week_plan_id, conditions, values, "progress")

    async def get_active_by_goal(self, goal_id: uuid.UUID) -> Optional[WeekPlan]:
        return await self._first(
            WeekPlanRow.goal_id == goal_id,
            WeekPlanRow.status == WeekPlanStatus.ACTIVE.value,
        )

    async def get_by_week_number(self, goal_id: uuid.UUID, week_number: int) -> Optional[WeekPlan]:
        return await self._first(
            WeekPlanRow.goal_id == goal_id,
            WeekPlanRow.week_number == week_number,
        )

    async def get_by_goal(
        self, goal_id: uuid.UUID, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Page[WeekPlan]:
        return await self._page(
            _row_to_plan,
            select(WeekPlanRow).where(WeekPlanRow.goal_id == goal_id),
            (WeekPlanRow.week_number, WeekPlanRow.created_at),
            page,
            page_size,
        )


class SqlMilestoneStore(_SqlStore, MilestoneStore):
    """Milestone store over an AsyncSession."""

    async def _get_row_by_quest(self, quest_id: uuid.UUID) -> Optional[MilestoneRow]:
        result = await self._execute(
            select(MilestoneRow)
            .where(MilestoneRow.quest_id == quest_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, milestone_id: uuid.UUID) -> Optional[Milestone]:
        result = await self._execute(
            select(MilestoneRow)
            .where(MilestoneRow.id == milestone_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return _row_to_milestone(row) if row else None

    async def get_by_quest(self, quest_id: uuid.UUID) -> Optional[Milestone]:
        row = await self._get_row_by_quest(quest_id)
        return _row_to_milestone(row) if row else None

    async def save(self, milestone: Milestone) -> Milestone:
        await self._merge(MilestoneRow(**_to_values(milestone)))
        return milestone.model_copy(deep=True)

    async def update_status(
        self,
        quest_id: uuid.UUID,
        status: MilestoneStatus,
        *,
        expected_status: Optional[MilestoneStatus] = None,
    ) -> Milestone:
        now = utcnow()
        values: Dict[Any, Any] = {MilestoneRow.status: status.value, MilestoneRow.updated_at: now}
        if status == MilestoneStatus.AVAILABLE:
            values[MilestoneRow.unlocked_at] = case(
                (MilestoneRow.unlocked_at.is_(None), now), else_=MilestoneRow.unlocked_at
            )
        elif status == MilestoneStatus.COMPLETED:
            values[MilestoneRow.completed_at] = now
        stmt = update(MilestoneRow).where(MilestoneRow.quest_id == quest_id)
        if expected_status is not None:
            stmt = stmt.where(MilestoneRow.status == expected_status.value)
        result = await self._execute(
            stmt.values(values).execution_options(synchronize_session=False)
        )
        row = await self._get_row_by_quest(quest_id)
        if row is None:
            raise NotFoundError("Milestone", quest_id)
        if result.rowcount == 0:
            raise StaleWriteError(
                "Milestone", quest_id, expected_status.value if expected_status else None
            )
        logger.debug("Milestone status set", extra={"quest_id": str(quest_id), "status": status.value})
        return _row_to_milestone(row)
