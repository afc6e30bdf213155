"""Unit tests for UnlockService: prerequisite checks, cascades, milestone gating."""

import uuid

import pytest

from src.engines.progression.unlock_service import UnlockService
from src.kernel.errors import NotFoundError, StoreFailureError
from src.kernel.models import MilestoneStatus, SkillMastery, SkillStatus, SkillType
from src.schemas.skill import Milestone


class FlakySkillStore:
    """Wraps a store and fails status writes for chosen ids."""

    def __init__(self, inner, failing_ids):
        self._inner = inner
        self._failing = set(failing_ids)

    def __getattr__(self, name):
        return getattr(self._inner, name)

    async def update_status(self, skill_id, status, *, expected_status=None):
        if skill_id in self._failing:
            raise StoreFailureError("disk full")
        return await self._inner.update_status(skill_id, status, expected_status=expected_status)


@pytest.fixture
def mastered(make_skill):
    return make_skill(
        title="Print Output",
        mastery=SkillMastery.MASTERED,
        status=SkillStatus.MASTERED,
        pass_count=3,
        consecutive_passes=3,
    )


class TestCheckPrerequisites:
    """Tests for prerequisite resolution."""

    @pytest.mark.asyncio
    async def test_all_met(self, skill_store, make_skill, mastered, settings):
        """Mastered prerequisites are met."""
        dependent = make_skill(
            skill_type=SkillType.BUILDING,
            status=SkillStatus.LOCKED,
            prerequisite_skill_ids=[mastered.id],
        )
        await skill_store.save_batch([mastered, dependent])
        check = await UnlockService(skill_store, settings=settings).check_prerequisites(dependent.id)
        assert check.all_met is True
        assert check.met_prerequisite_ids == [mastered.id]

    @pytest.mark.asyncio
    async def test_unmastered_reason(self, skill_store, make_skill, settings):
        """An unmastered prerequisite is reported with title and mastery."""
        prereq = make_skill(title="Loops", mastery=SkillMastery.PRACTICING)
        dependent = make_skill(
            skill_type=SkillType.BUILDING,
            status=SkillStatus.LOCKED,
            prerequisite_skill_ids=[prereq.id],
        )
        await skill_store.save_batch([prereq, dependent])
        check = await UnlockService(skill_store, settings=settings).check_prerequisites(dependent.id)
        assert check.all_met is False
        assert check.reasons == ['"Loops" not yet mastered (practicing)']

    @pytest.mark.asyncio
    async def test_missing_prerequisite_is_unmet(self, skill_store, make_skill, settings):
        """An unresolvable id keeps the skill locked."""
        ghost = uuid.uuid4()
        dependent = make_skill(
            skill_type=SkillType.BUILDING,
            status=SkillStatus.LOCKED,
            prerequisite_skill_ids=[ghost],
        )
        await skill_store.save(dependent)
        check = await UnlockService(skill_store, settings=settings).check_prerequisites(dependent.id)
        assert check.all_met is False
        assert check.unmet_prerequisite_ids == [ghost]
        assert check.reasons == [f"Prerequisite {ghost} not found"]

    @pytest.mark.asyncio
    async def test_unknown_skill(self, skill_store, settings):
        with pytest.raises(NotFoundError):
            await UnlockService(skill_store, settings=settings).check_prerequisites(uuid.uuid4())


class TestUnlockCascade:
    """Tests for unlock_eligible_skills."""

    @pytest.mark.asyncio
    async def test_unlocks_when_all_met(self, skill_store, make_skill, mastered, settings):
        """A dependent whose only prerequisite was mastered becomes available."""
        dependent = make_skill(
            skill_type=SkillType.BUILDING,
            status=SkillStatus.LOCKED,
            prerequisite_skill_ids=[mastered.id],
        )
        await skill_store.save_batch([mastered, dependent])
        result = await UnlockService(skill_store, settings=settings).unlock_eligible_skills(mastered.id)
        assert [s.id for s in result.unlocked_skills] == [dependent.id]
        stored = await skill_store.get(dependent.id)
        assert stored.status == SkillStatus.AVAILABLE
        assert stored.unlocked_at is not None

    @pytest.mark.asyncio
    async def test_partial_prerequisites_stay_locked(self, skill_store, make_skill, mastered, settings):
        """A second unmastered prerequisite keeps the dependent locked."""
        other = make_skill(mastery=SkillMastery.PRACTICING)
        dependent = make_skill(
            skill_type=SkillType.COMPOUND,
            status=SkillStatus.LOCKED,
            prerequisite_skill_ids=[mastered.id, other.id],
        )
        await skill_store.save_batch([mastered, other, dependent])
        result = await UnlockService(skill_store, settings=settings).unlock_eligible_skills(mastered.id)
        assert result.unlocked_count == 0
        assert result.still_locked_skill_ids == [dependent.id]

    @pytest.mark.asyncio
    async def test_cross_quest_unlock(self, skill_store, make_skill, mastered, settings):
        """Locked skills of other quests in the same goal are candidates."""
        dependent = make_skill(
            quest_id=uuid.uuid4(),
            skill_type=SkillType.COMPOUND,
            status=SkillStatus.LOCKED,
            prerequisite_skill_ids=[mastered.id],
        )
        await skill_store.save_batch([mastered, dependent])
        result = await UnlockService(skill_store, settings=settings).unlock_eligible_skills(mastered.id)
        assert result.unlocked_count == 1

    @pytest.mark.asyncio
    async def test_other_goals_untouched(self, skill_store, make_skill, mastered, settings):
        """Skills of another goal are not considered."""
        foreign = make_skill(
            goal_id=uuid.uuid4(),
            skill_type=SkillType.BUILDING,
            status=SkillStatus.LOCKED,
            prerequisite_skill_ids=[mastered.id],
        )
        await skill_store.save_batch([mastered, foreign])
        result = await UnlockService(skill_store, settings=settings).unlock_eligible_skills(mastered.id)
        assert result.unlocked_count == 0
        assert (await skill_store.get(foreign.id)).status == SkillStatus.LOCKED

    @pytest.mark.asyncio
    async def test_idempotent_and_monotonic(self, skill_store, make_skill, mastered, settings):
        """Re-running never re-unlocks or re-locks."""
        dependent = make_skill(
            skill_type=SkillType.BUILDING,
            status=SkillStatus.LOCKED,
            prerequisite_skill_ids=[mastered.id],
        )
        await skill_store.save_batch([mastered, dependent])
        service = UnlockService(skill_store, settings=settings)
        first = await service.unlock_eligible_skills(mastered.id)
        second = await service.unlock_eligible_skills(mastered.id)
        assert first.unlocked_count == 1
        assert second.unlocked_count == 0
        assert (await skill_store.get(dependent.id)).status == SkillStatus.AVAILABLE

        # demote the prerequisite; the dependent stays unlocked
        await skill_store.update_mastery(mastered.id, SkillMastery.PRACTICING, 3, 1, 0)
        await service.unlock_eligible_skills(mastered.id)
        assert (await skill_store.get(dependent.id)).status == SkillStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_per_skill_failure_does_not_abort(self, skill_store, make_skill, mastered, settings):
        """A failed write is reported; other candidates still unlock."""
        broken = make_skill(
            skill_type=SkillType.BUILDING,
            status=SkillStatus.LOCKED,
            prerequisite_skill_ids=[mastered.id],
        )
        healthy = make_skill(
            skill_type=SkillType.BUILDING,
            status=SkillStatus.LOCKED,
            prerequisite_skill_ids=[mastered.id],
        )
        await skill_store.save_batch([mastered, broken, healthy])
        service = UnlockService(FlakySkillStore(skill_store, [broken.id]), settings=settings)
        result = await service.unlock_eligible_skills(mastered.id)
        assert [s.id for s in result.unlocked_skills] == [healthy.id]
        assert result.failed_skill_ids == [broken.id]
        assert (await skill_store.get(broken.id)).status == SkillStatus.LOCKED


class TestMilestoneAvailability:
    """Tests for check_milestone_availability."""

    async def _quest(self, skill_store, make_skill, mastered_count, total):
        skills = [
            make_skill(mastery=SkillMastery.MASTERED if i < mastered_count else SkillMastery.PRACTICING)
            for i in range(total)
        ]
        synthesis = make_skill(
            skill_type=SkillType.SYNTHESIS,
            status=SkillStatus.LOCKED,
            is_compound=True,
            prerequisite_skill_ids=[s.id for s in skills],
            component_skill_ids=[s.id for s in skills],
        )
        await skill_store.save_batch([*skills, synthesis])
        return skills, synthesis

    @pytest.mark.asyncio
    async def test_three_of_four_is_available(self, skill_store, make_skill, quest_id, settings):
        """3/4 = 0.75 meets the default threshold; synthesis is not counted."""
        await self._quest(skill_store, make_skill, 3, 4)
        availability = await UnlockService(skill_store, settings=settings).check_milestone_availability(
            quest_id, 0.75
        )
        assert availability.available is True
        assert availability.total_count == 4
        assert availability.mastery_percent == 0.75

    @pytest.mark.asyncio
    async def test_below_threshold_reason(self, skill_store, make_skill, quest_id, settings):
        """2/4 reports how many more are needed."""
        await self._quest(skill_store, make_skill, 2, 4)
        availability = await UnlockService(skill_store, settings=settings).check_milestone_availability(quest_id)
        assert availability.available is False
        assert availability.reason == "Need 1 more skill(s) mastered (50% / 75% required)"

    @pytest.mark.asyncio
    async def test_empty_quest(self, skill_store, settings):
        availability = await UnlockService(skill_store, settings=settings).check_milestone_availability(uuid.uuid4())
        assert availability.available is False
        assert availability.reason == "No skills found for quest"

    @pytest.mark.asyncio
    async def test_flips_milestone(self, skill_store, milestone_store, make_skill, goal_id, quest_id, settings):
        """Crossing the threshold marks a locked milestone available once."""
        _, synthesis = await self._quest(skill_store, make_skill, 4, 4)
        await milestone_store.save(Milestone(
            quest_id=quest_id,
            goal_id=goal_id,
            synthesis_skill_id=synthesis.id,
            title="Ship It",
            description="Complete the quest",
            artifact="A shipped project",
            estimated_minutes=35,
        ))
        service = UnlockService(skill_store, milestone_store, settings=settings)
        first = await service.check_milestone_availability(quest_id)
        second = await service.check_milestone_availability(quest_id)
        assert first.newly_available is True
        assert second.newly_available is False
        assert (await milestone_store.get_by_quest(quest_id)).status == MilestoneStatus.AVAILABLE


class TestLockedSkillsWithReasons:
    """Tests for the locked-skill diagnostic."""

    @pytest.mark.asyncio
    async def test_lists_outstanding_prerequisites(self, skill_store, make_skill, mastered, goal_id, settings):
        pending = make_skill(title="Loops", mastery=SkillMastery.NOT_STARTED)
        dependent = make_skill(
            skill_type=SkillType.COMPOUND,
            status=SkillStatus.LOCKED,
            prerequisite_skill_ids=[mastered.id, pending.id],
        )
        await skill_store.save_batch([mastered, pending, dependent])
        infos = await UnlockService(skill_store, settings=settings).get_locked_skills_with_reasons(goal_id)
        assert len(infos) == 1
        assert infos[0].skill.id == dependent.id
        assert infos[0].missing_prerequisite_ids == [pending.id]
        assert infos[0].reasons == ['"Loops" not yet mastered (not_started)']
