"""
Mastery Service - records drill outcomes and derives mastery.

Mastery thresholds (defaults):
- practicing: passCount >= 1
- mastered: passCount >= 3 AND consecutivePasses >= 2

Mastery is not monotonic: a fail resets consecutivePasses and demotes a
mastered skill to practicing. Unlocks already granted stay granted.
"""

import uuid
from typing import List, Optional

from pydantic import BaseModel

from src.config import Settings, get_settings
from src.engines.progression.unlock_service import UnlockService
from src.kernel.errors import NotFoundError, StaleWriteError
from src.kernel.models.skill import DrillOutcome, SkillMastery, SkillStatus
from src.kernel.stores.base import SkillStore, fetch_all
from src.logging_config import get_logger
from src.schemas.skill import Skill

logger = get_logger(__name__)


def calculate_mastery(
    pass_count: int,
    consecutive_passes: int,
    settings: Optional[Settings] = None,
) -> SkillMastery:
    """Mastery level from counters. ATTEMPTING is never returned with practicing_threshold=1."""
    settings = settings or get_settings()
    if (
        pass_count >= settings.mastered_threshold
        and consecutive_passes >= settings.consecutive_threshold
    ):
        return SkillMastery.MASTERED
    if pass_count >= settings.practicing_threshold:
        return SkillMastery.PRACTICING
    if pass_count > 0:
        return SkillMastery.ATTEMPTING
    return SkillMastery.NOT_STARTED


def derive_status(current: SkillStatus, mastery: SkillMastery) -> SkillStatus:
    """Status follows mastery but never returns to locked."""
    if mastery == SkillMastery.MASTERED:
        return SkillStatus.MASTERED
    if mastery == SkillMastery.PRACTICING and current in (SkillStatus.AVAILABLE, SkillStatus.MASTERED):
        return SkillStatus.IN_PROGRESS
    return current


class OutcomeResult(BaseModel):
    """What one recorded outcome changed."""

    skill: Skill
    outcome: DrillOutcome
    previous_mastery: SkillMastery
    new_mastery: SkillMastery
    mastery_changed: bool = False
    became_mastered: bool = False
    unlocked_skills: List[Skill] = []
    milestone_available: bool = False
    milestone_completed: bool = False


class MasterySummary(BaseModel):
    """Mastery bucket counts for a goal."""

    goal_id: uuid.UUID
    total: int = 0
    not_started: int = 0
    attempting: int = 0
    practicing: int = 0
    mastered: int = 0
    mastered_percent: float = 0.0
    in_progress_percent: float = 0.0


class MasteryService:
    """
    The single entry point into the per-skill mastery state machine.

    Writes are optimistic: the counter update carries the version it was
    computed from and is recomputed from a fresh read when rejected.
    """

    def __init__(
        self,
        skill_store: SkillStore,
        unlock_service: UnlockService,
        settings: Optional[Settings] = None,
    ):
        self.skill_store = skill_store
        self.unlock_service = unlock_service
        self.settings = settings or get_settings()

    async def _require(self, skill_id: uuid.UUID) -> Skill:
        skill = await self.skill_store.get(skill_id)
        if skill is None:
            raise NotFoundError("Skill", skill_id)
        return skill

    async def _write_counters(self, skill_id: uuid.UUID, outcome: DrillOutcome):
        """Read-modify-write the counters; returns (before, after)."""
        attempts = max(1, self.settings.max_write_retries)
        attempt = 1
        while True:
            skill = await self._require(skill_id)
            pass_count = skill.pass_count
            fail_count = skill.fail_count
            consecutive = skill.consecutive_passes
            if outcome == DrillOutcome.PASS:
                pass_count += 1
                consecutive += 1
            elif outcome == DrillOutcome.FAIL:
                fail_count += 1
                consecutive = 0

            mastery = calculate_mastery(pass_count, consecutive, self.settings)
            try:
                updated = await self.skill_store.update_mastery(
                    skill_id,
                    mastery,
                    pass_count,
                    fail_count,
                    consecutive,
                    last_outcome=outcome,
                    expected_version=skill.version,
                )
                return skill, updated
            except StaleWriteError:
                if attempt >= attempts:
                    raise
                logger.warning(
                    "Stale mastery write, retrying (%d/%d)",
                    attempt,
                    attempts,
                    extra={"skill_id": str(skill_id)},
                )
                attempt += 1

    async def record_outcome(self, skill_id: uuid.UUID, outcome: DrillOutcome) -> OutcomeResult:
        """
        Apply one drill outcome.

        pass/fail move the counters; partial is recorded as practice without
        changing them; skipped writes nothing. Entering mastered triggers the
        unlock cascade and a milestone check for the skill's quest.
        """
        if outcome == DrillOutcome.SKIPPED:
            skill = await self._require(skill_id)
            return OutcomeResult(
                skill=skill,
                outcome=outcome,
                previous_mastery=skill.mastery,
                new_mastery=skill.mastery,
            )

        before, updated = await self._write_counters(skill_id, outcome)

        new_status = derive_status(updated.status, updated.mastery)
        if new_status != updated.status:
            updated = await self.skill_store.update_status(
                skill_id, new_status, expected_status=updated.status
            )

        result = OutcomeResult(
            skill=updated,
            outcome=outcome,
            previous_mastery=before.mastery,
            new_mastery=updated.mastery,
            mastery_changed=before.mastery != updated.mastery,
            became_mastered=(
                before.mastery != SkillMastery.MASTERED
                and updated.mastery == SkillMastery.MASTERED
            ),
        )
        logger.info(
            "Recorded %s for '%s'",
            outcome.value,
            updated.title,
            extra={
                "skill_id": str(skill_id),
                "mastery": updated.mastery.value,
                "pass_count": updated.pass_count,
                "consecutive_passes": updated.consecutive_passes,
            },
        )
        if result.mastery_changed and before.mastery == SkillMastery.MASTERED:
            logger.info("Skill '%s' regressed to %s", updated.title, updated.mastery.value)

        if result.became_mastered:
            unlock = await self.unlock_service.unlock_eligible_skills(skill_id)
            result.unlocked_skills = unlock.unlocked_skills
            availability = await self.unlock_service.check_milestone_availability(updated.quest_id)
            result.milestone_available = availability.available
            if updated.is_synthesis:
                result.milestone_completed = await self.unlock_service.mark_milestone_completed(
                    updated.quest_id
                )

        return result

    async def get_mastery_summary(self, goal_id: uuid.UUID) -> MasterySummary:
        skills = await fetch_all(
            self.skill_store.get_by_goal, goal_id, page_size=self.settings.store_page_size
        )
        summary = MasterySummary(goal_id=goal_id, total=len(skills))
        for skill in skills:
            field = skill.mastery.value
            setattr(summary, field, getattr(summary, field) + 1)
        if skills:
            summary.mastered_percent = summary.mastered / len(skills)
            summary.in_progress_percent = (summary.attempting + summary.practicing) / len(skills)
        return summary

    async def get_quest_mastery_percent(self, quest_id: uuid.UUID) -> float:
        """Mastered share of the quest's non-synthesis skills."""
        skills = await fetch_all(
            self.skill_store.get_by_quest, quest_id, page_size=self.settings.store_page_size
        )
        base = [s for s in skills if not s.is_synthesis]
        if not base:
            return 0.0
        return sum(1 for s in base if s.mastery == SkillMastery.MASTERED) / len(base)
