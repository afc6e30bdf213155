"""End-to-end progression through a generated quest."""

import uuid
from datetime import date

import pytest

from src.engines.progression.engine import ProgressionEngine
from src.kernel.models import (
    DrillOutcome,
    MilestoneStatus,
    SkillMastery,
    SkillStatus,
    SkillType,
    WeekPlanStatus,
)


async def master(engine, skill_id, week_plan_id):
    record = None
    for _ in range(3):
        record = await engine.record_drill(skill_id, DrillOutcome.PASS, week_plan_id)
    return record


async def run_quest(engine, context):
    """Generate a 5-day quest and pass every drill three times in schedule order."""
    start = await engine.initialize_quest(context, date(2026, 2, 2))
    skills = start.generation.skills
    week = start.first_week
    by_type = {t: [s for s in skills if s.skill_type == t] for t in SkillType}
    foundation = by_type[SkillType.FOUNDATION][0]
    first_building, second_building = by_type[SkillType.BUILDING]
    compound = by_type[SkillType.COMPOUND][0]
    synthesis = by_type[SkillType.SYNTHESIS][0]

    assert week.status.value == "active"
    assert [d.skill_id for d in week.days] == [s.id for s in skills]

    record = await master(engine, foundation.id, week.id)
    assert [s.id for s in record.outcome.unlocked_skills] == [first_building.id]

    record = await master(engine, first_building.id, week.id)
    assert {s.id for s in record.outcome.unlocked_skills} == {second_building.id, compound.id}
    assert record.outcome.milestone_available is False

    record = await master(engine, second_building.id, week.id)
    assert record.outcome.unlocked_skills == []
    assert record.outcome.milestone_available is True

    record = await master(engine, compound.id, week.id)
    assert [s.id for s in record.outcome.unlocked_skills] == [synthesis.id]
    assert record.outcome.milestone_available is True

    record = await master(engine, synthesis.id, week.id)
    assert record.outcome.milestone_completed is True
    assert record.week.drills_completed == 15
    assert record.week.drills_passed == 15
    assert record.week.skills_mastered == 5
    assert set(record.week.completed_skill_ids) == {s.id for s in skills}

    completion = await engine.complete_week(week.id)
    assert completion.next_week is None
    assert completion.carry_forward_skills == []
    assert completion.summary.performance == "strong"
    assert len(completion.summary.skills_mastered) == 5

    progress = await engine.get_progress(context.goal_id)
    assert progress.mastered == 5
    assert progress.mastered_percent == 1.0
    milestone = await engine.milestone_store.get_by_quest(context.quest_id)
    assert milestone.status == MilestoneStatus.COMPLETED


async def run_overlapping_quests(engine, make_context):
    """Start a second quest while the first one's week is still running."""
    first = await engine.initialize_quest(make_context(), date(2026, 2, 2))
    second = await engine.initialize_quest(
        make_context(quest_id=uuid.uuid4(), week_start=2), date(2026, 2, 9)
    )
    goal_id = first.first_week.goal_id
    assert first.first_week.status == WeekPlanStatus.ACTIVE
    assert second.first_week.status == WeekPlanStatus.PENDING

    for skill in first.generation.skills:
        await master(engine, skill.id, first.first_week.id)
    completion = await engine.complete_week(first.first_week.id)

    next_week = completion.next_week
    second_ids = [s.id for s in second.generation.skills]
    assert next_week is not None
    assert next_week.id == second.first_week.id
    assert next_week.status == WeekPlanStatus.ACTIVE
    assert next_week.quest_id == second.generation.quest_id
    assert next_week.week_number == 2
    assert next_week.start_date == date(2026, 2, 9)
    assert next_week.is_first_week_of_quest is True
    assert next_week.scheduled_skill_ids == second_ids
    assert (await engine.weeks.get_current_week(goal_id)).id == next_week.id
    assert (await engine.weeks.get_week_by_number(goal_id, 2)).id == next_week.id

    for skill in second.generation.skills:
        await master(engine, skill.id, next_week.id)
    final = await engine.complete_week(next_week.id)
    assert final.next_week is None
    progress = await engine.get_progress(goal_id)
    assert progress.mastered == 10


class TestProgressionFlow:
    """Full quest lifecycle over both store backends."""

    @pytest.mark.asyncio
    async def test_in_memory(self, make_context, settings):
        await run_quest(ProgressionEngine.in_memory(settings), make_context())

    @pytest.mark.asyncio
    async def test_sql(self, db_session, make_context, settings):
        await run_quest(ProgressionEngine.for_session(db_session, settings), make_context())

    @pytest.mark.asyncio
    async def test_failed_drill_carries_forward(self, make_context, settings):
        """A skill left practicing is rescheduled first in the next week."""
        engine = ProgressionEngine.in_memory(settings)
        start = await engine.initialize_quest(make_context(), date(2026, 2, 2))
        foundation = start.generation.skills[0]

        await engine.record_drill(foundation.id, DrillOutcome.PASS, start.first_week.id)
        await engine.record_drill(foundation.id, DrillOutcome.FAIL, start.first_week.id)
        completion = await engine.complete_week(start.first_week.id)

        assert [s.id for s in completion.carry_forward_skills] == [foundation.id]
        next_week = completion.next_week
        assert next_week.carry_forward_skill_ids == [foundation.id]
        assert next_week.start_date == date(2026, 2, 9)
        assert next_week.theme == "Review & Reinforce"
        assert completion.completed_week.pass_rate == 0.5
        stored = await engine.skill_store.get(foundation.id)
        assert stored.mastery == SkillMastery.PRACTICING
        assert stored.status == SkillStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_second_quest_waits_for_current_week(self, make_context, settings):
        await run_overlapping_quests(ProgressionEngine.in_memory(settings), make_context)

    @pytest.mark.asyncio
    async def test_second_quest_waits_for_current_week_sql(self, db_session, make_context, settings):
        await run_overlapping_quests(ProgressionEngine.for_session(db_session, settings), make_context)
