"""Unit tests for the in-memory stores."""

import uuid

import pytest

from src.kernel.errors import NotFoundError, StaleWriteError
from src.kernel.models import (
    MilestoneStatus,
    SkillMastery,
    SkillStatus,
    SkillType,
    WeekPlanStatus,
)
from src.kernel.stores.base import fetch_all
from src.schemas.skill import Milestone


class TestInMemorySkillStore:
    """Tests for InMemorySkillStore."""

    @pytest.mark.asyncio
    async def test_round_trip(self, skill_store, make_skill):
        """A saved skill reads back equal."""
        skill = make_skill(topics=["loops", "iteration"], locked_variables=["No recursion"])
        await skill_store.save(skill)
        assert await skill_store.get(skill.id) == skill

    @pytest.mark.asyncio
    async def test_reads_are_copies(self, skill_store, make_skill):
        skill = await skill_store.save(make_skill())
        loaded = await skill_store.get(skill.id)
        loaded.topics.append("mutated")
        assert "mutated" not in (await skill_store.get(skill.id)).topics

    @pytest.mark.asyncio
    async def test_update_checks_version(self, skill_store, make_skill):
        skill = await skill_store.save(make_skill())
        renamed = await skill_store.update(skill.model_copy(update={"title": "Renamed"}))
        assert renamed.version == skill.version + 1
        with pytest.raises(StaleWriteError):
            await skill_store.update(skill.model_copy(update={"title": "Lost update"}))
        assert (await skill_store.get(skill.id)).title == "Renamed"

    @pytest.mark.asyncio
    async def test_update_mastery_expected_version(self, skill_store, make_skill):
        skill = await skill_store.save(make_skill())
        updated = await skill_store.update_mastery(
            skill.id, SkillMastery.PRACTICING, 1, 0, 1, expected_version=skill.version
        )
        assert updated.pass_count == 1
        assert updated.last_practiced_at is not None
        with pytest.raises(StaleWriteError):
            await skill_store.update_mastery(
                skill.id, SkillMastery.PRACTICING, 2, 0, 2, expected_version=skill.version
            )

    @pytest.mark.asyncio
    async def test_update_status_compare_and_swap(self, skill_store, make_skill):
        skill = await skill_store.save(make_skill(status=SkillStatus.LOCKED))
        unlocked = await skill_store.update_status(
            skill.id, SkillStatus.AVAILABLE, expected_status=SkillStatus.LOCKED
        )
        assert unlocked.unlocked_at is not None
        with pytest.raises(StaleWriteError):
            await skill_store.update_status(
                skill.id, SkillStatus.AVAILABLE, expected_status=SkillStatus.LOCKED
            )

    @pytest.mark.asyncio
    async def test_unknown_skill(self, skill_store):
        with pytest.raises(NotFoundError):
            await skill_store.update_status(uuid.uuid4(), SkillStatus.AVAILABLE)

    @pytest.mark.asyncio
    async def test_listing_order_and_pagination(self, skill_store, make_skill, quest_id):
        later = make_skill(week_number=2)
        early = [make_skill(week_number=1) for _ in range(4)]
        await skill_store.save_batch([later, *early])

        page = await skill_store.get_by_quest(quest_id, page=1, page_size=2)
        assert page.total == 5
        assert page.has_more is True
        assert [s.id for s in page.items] == [s.id for s in early[:2]]

        everything = await fetch_all(skill_store.get_by_quest, quest_id, page_size=2)
        assert [s.id for s in everything] == [*[s.id for s in early], later.id]

    @pytest.mark.asyncio
    async def test_filters(self, skill_store, make_skill, goal_id, user_id, quest_id):
        locked = make_skill(status=SkillStatus.LOCKED, skill_type=SkillType.BUILDING)
        available = make_skill()
        await skill_store.save_batch([locked, available])
        assert [s.id for s in (await skill_store.get_locked(goal_id)).items] == [locked.id]
        assert [s.id for s in (await skill_store.get_available(goal_id)).items] == [available.id]
        assert (await skill_store.get_by_user(user_id)).total == 2
        by_type = await skill_store.get_by_type(quest_id, SkillType.BUILDING)
        assert [s.id for s in by_type.items] == [locked.id]

    @pytest.mark.asyncio
    async def test_delete_by_quest(self, skill_store, make_skill, quest_id):
        await skill_store.save_batch([make_skill(), make_skill(), make_skill(quest_id=uuid.uuid4())])
        assert await skill_store.delete_by_quest(quest_id) == 2
        assert (await skill_store.get_by_quest(quest_id)).total == 0

    @pytest.mark.asyncio
    async def test_get_many_drops_misses(self, skill_store, make_skill):
        skill = await skill_store.save(make_skill())
        found = await skill_store.get_many([uuid.uuid4(), skill.id])
        assert [s.id for s in found] == [skill.id]


class TestInMemoryWeekPlanStore:
    """Tests for InMemoryWeekPlanStore."""

    @pytest.mark.asyncio
    async def test_round_trip(self, week_plan_store, make_week):
        plan = make_week(theme="Week 1")
        await week_plan_store.save(plan)
        assert await week_plan_store.get(plan.id) == plan

    @pytest.mark.asyncio
    async def test_status_and_lookup(self, week_plan_store, make_week, goal_id):
        plan = await week_plan_store.save(make_week())
        assert await week_plan_store.get_active_by_goal(goal_id) is None
        await week_plan_store.update_status(
            plan.id, WeekPlanStatus.ACTIVE, expected_status=WeekPlanStatus.PENDING
        )
        active = await week_plan_store.get_active_by_goal(goal_id)
        assert active.id == plan.id
        assert (await week_plan_store.get_by_week_number(goal_id, 1)).id == plan.id
        with pytest.raises(StaleWriteError):
            await week_plan_store.update_status(
                plan.id, WeekPlanStatus.ACTIVE, expected_status=WeekPlanStatus.PENDING
            )

    @pytest.mark.asyncio
    async def test_progress_deduplicates_completed_ids(self, week_plan_store, make_week):
        plan = await week_plan_store.save(make_week())
        skill_id = uuid.uuid4()
        await week_plan_store.update_progress(plan.id, 1, 1, 0, 0, 0, completed_skill_ids=[skill_id])
        updated = await week_plan_store.update_progress(
            plan.id, 1, 1, 0, 0, 1, completed_skill_ids=[skill_id]
        )
        assert updated.completed_skill_ids == [skill_id]
        assert updated.drills_passed == 2
        assert updated.skills_mastered == 1


class TestInMemoryMilestoneStore:
    """Tests for InMemoryMilestoneStore."""

    @pytest.mark.asyncio
    async def test_status_by_quest(self, milestone_store, goal_id, quest_id):
        milestone = Milestone(
            quest_id=quest_id,
            goal_id=goal_id,
            synthesis_skill_id=uuid.uuid4(),
            title="Ship It",
            description="Complete the quest",
            artifact="A shipped project",
            estimated_minutes=35,
        )
        await milestone_store.save(milestone)
        assert await milestone_store.get(milestone.id) == milestone

        opened = await milestone_store.update_status(
            quest_id, MilestoneStatus.AVAILABLE, expected_status=MilestoneStatus.LOCKED
        )
        assert opened.unlocked_at is not None
        closed = await milestone_store.update_status(quest_id, MilestoneStatus.COMPLETED)
        assert closed.completed_at is not None
        with pytest.raises(NotFoundError):
            await milestone_store.update_status(uuid.uuid4(), MilestoneStatus.AVAILABLE)
