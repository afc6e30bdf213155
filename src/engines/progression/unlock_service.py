"""
Unlock Service - prerequisite checks, cascading unlock, milestone gating.

A prerequisite counts as met only when the referenced skill resolves and is
mastered. Unresolvable ids keep the dependent locked. Unlocking is monotonic:
nothing here ever moves a skill back to locked.
"""

import math
import uuid
from typing import List, Optional

from pydantic import BaseModel

from src.config import Settings, get_settings
from src.kernel.errors import NotFoundError, StaleWriteError, StoreFailureError
from src.kernel.models.milestone import MilestoneStatus
from src.kernel.models.skill import SkillMastery, SkillStatus
from src.kernel.stores.base import MilestoneStore, SkillStore, fetch_all
from src.logging_config import get_logger
from src.schemas.skill import Skill

logger = get_logger(__name__)


class PrerequisiteCheckResult(BaseModel):
    """Met/unmet split of one skill's prerequisites."""

    skill_id: uuid.UUID
    all_met: bool
    met_prerequisite_ids: List[uuid.UUID] = []
    unmet_prerequisite_ids: List[uuid.UUID] = []
    reasons: List[str] = []


class UnlockResult(BaseModel):
    """Outcome of one unlock cascade."""

    trigger_skill_id: uuid.UUID
    unlocked_skills: List[Skill] = []
    still_locked_skill_ids: List[uuid.UUID] = []
    failed_skill_ids: List[uuid.UUID] = []

    @property
    def unlocked_count(self) -> int:
        return len(self.unlocked_skills)


class MilestoneAvailability(BaseModel):
    """Whether a quest's milestone is open, and why not."""

    quest_id: uuid.UUID
    available: bool
    mastery_percent: float = 0.0
    required_percent: float
    mastered_count: int = 0
    total_count: int = 0
    reason: Optional[str] = None
    newly_available: bool = False


class LockedSkillInfo(BaseModel):
    """A locked skill and what still blocks it."""

    skill: Skill
    missing_prerequisite_ids: List[uuid.UUID]
    reasons: List[str]


class UnlockService:
    """
    Answers "are prerequisites met" and propagates availability after a
    mastery event.

    Candidates for a cascade are every locked skill of the goal, not just
    the quest, so dependencies that cross quest boundaries unlock too.
    """

    def __init__(
        self,
        skill_store: SkillStore,
        milestone_store: Optional[MilestoneStore] = None,
        settings: Optional[Settings] = None,
    ):
        self.skill_store = skill_store
        self.milestone_store = milestone_store
        self.settings = settings or get_settings()

    async def _require(self, skill_id: uuid.UUID) -> Skill:
        skill = await self.skill_store.get(skill_id)
        if skill is None:
            raise NotFoundError("Skill", skill_id)
        return skill

    async def _evaluate(self, skill: Skill) -> PrerequisiteCheckResult:
        met: List[uuid.UUID] = []
        unmet: List[uuid.UUID] = []
        reasons: List[str] = []
        for prereq_id in skill.prerequisite_skill_ids:
            prereq = await self.skill_store.get(prereq_id)
            if prereq is None:
                unmet.append(prereq_id)
                reasons.append(f"Prerequisite {prereq_id} not found")
            elif prereq.mastery != SkillMastery.MASTERED:
                unmet.append(prereq_id)
                reasons.append(f'"{prereq.title}" not yet mastered ({prereq.mastery.value})')
            else:
                met.append(prereq_id)
        return PrerequisiteCheckResult(
            skill_id=skill.id,
            all_met=not unmet,
            met_prerequisite_ids=met,
            unmet_prerequisite_ids=unmet,
            reasons=reasons,
        )

    async def check_prerequisites(self, skill_id: uuid.UUID) -> PrerequisiteCheckResult:
        """Resolve every prerequisite through the store, wherever it lives."""
        return await self._evaluate(await self._require(skill_id))

    async def unlock_eligible_skills(self, mastered_skill_id: uuid.UUID) -> UnlockResult:
        """
        Unlock every locked skill of the goal that depends on the mastered
        skill and now has all prerequisites met.

        Each candidate is flipped with a locked -> available compare-and-swap,
        so reruns and concurrent cascades never double-apply. A failure on
        one candidate is logged and leaves it locked; the rest still unlock.
        """
        mastered = await self._require(mastered_skill_id)
        locked = await fetch_all(
            self.skill_store.get_locked,
            mastered.goal_id,
            page_size=self.settings.store_page_size,
        )
        candidates = [s for s in locked if mastered_skill_id in s.prerequisite_skill_ids]
        result = UnlockResult(trigger_skill_id=mastered_skill_id)

        for candidate in candidates:
            check = await self._evaluate(candidate)
            if not check.all_met:
                result.still_locked_skill_ids.append(candidate.id)
                continue
            try:
                unlocked = await self.skill_store.update_status(
                    candidate.id,
                    SkillStatus.AVAILABLE,
                    expected_status=SkillStatus.LOCKED,
                )
            except StaleWriteError:
                # moved out of locked by someone else in the meantime
                logger.debug("Skill already unlocked", extra={"skill_id": str(candidate.id)})
                continue
            except (StoreFailureError, NotFoundError) as exc:
                logger.warning(
                    "Failed to unlock skill %s: %s",
                    candidate.id,
                    exc,
                    extra={"trigger_skill_id": str(mastered_skill_id)},
                )
                result.failed_skill_ids.append(candidate.id)
                continue
            result.unlocked_skills.append(unlocked)
            logger.info(
                "Unlocked skill '%s'",
                unlocked.title,
                extra={
                    "skill_id": str(unlocked.id),
                    "trigger_skill_id": str(mastered_skill_id),
                    "cross_quest": unlocked.quest_id != mastered.quest_id,
                },
            )

        return result

    async def check_milestone_availability(
        self,
        quest_id: uuid.UUID,
        required_mastery_percent: Optional[float] = None,
    ) -> MilestoneAvailability:
        """
        Mastered / total over the quest's non-synthesis skills against the
        threshold. Flips a locked milestone to available when crossed.
        """
        milestone = await self.milestone_store.get_by_quest(quest_id) if self.milestone_store else None
        if required_mastery_percent is not None:
            required = required_mastery_percent
        elif milestone is not None:
            required = milestone.required_mastery_percent
        else:
            required = self.settings.milestone_required_mastery

        skills = await fetch_all(
            self.skill_store.get_by_quest, quest_id, page_size=self.settings.store_page_size
        )
        if not skills:
            return MilestoneAvailability(
                quest_id=quest_id,
                available=False,
                required_percent=required,
                reason="No skills found for quest",
            )

        base = [s for s in skills if not s.is_synthesis]
        if not base:
            return MilestoneAvailability(
                quest_id=quest_id,
                available=False,
                required_percent=required,
                reason="No non-synthesis skills in quest",
            )

        mastered_count = sum(1 for s in base if s.mastery == SkillMastery.MASTERED)
        percent = mastered_count / len(base)
        availability = MilestoneAvailability(
            quest_id=quest_id,
            available=percent >= required,
            mastery_percent=percent,
            required_percent=required,
            mastered_count=mastered_count,
            total_count=len(base),
        )

        if not availability.available:
            # round first so 10 * 0.7 does not ceil to 8
            needed = math.ceil(round(len(base) * required, 9)) - mastered_count
            availability.reason = (
                f"Need {needed} more skill(s) mastered "
                f"({round(percent * 100)}% / {round(required * 100)}% required)"
            )
            return availability

        if milestone is not None and milestone.status == MilestoneStatus.LOCKED:
            try:
                await self.milestone_store.update_status(
                    quest_id,
                    MilestoneStatus.AVAILABLE,
                    expected_status=MilestoneStatus.LOCKED,
                )
                availability.newly_available = True
                logger.info(
                    "Milestone '%s' is now available",
                    milestone.title,
                    extra={"quest_id": str(quest_id), "mastery_percent": percent},
                )
            except StaleWriteError:
                logger.debug("Milestone already flipped", extra={"quest_id": str(quest_id)})
        return availability

    async def mark_milestone_completed(self, quest_id: uuid.UUID) -> bool:
        """Close the quest milestone once its synthesis skill is mastered."""
        if self.milestone_store is None:
            return False
        milestone = await self.milestone_store.get_by_quest(quest_id)
        if milestone is None or milestone.status == MilestoneStatus.COMPLETED:
            return False
        await self.milestone_store.update_status(quest_id, MilestoneStatus.COMPLETED)
        logger.info("Milestone '%s' completed", milestone.title, extra={"quest_id": str(quest_id)})
        return True

    async def get_locked_skills_with_reasons(self, goal_id: uuid.UUID) -> List[LockedSkillInfo]:
        """Every still-locked skill of the goal with its outstanding prerequisites."""
        locked = await fetch_all(
            self.skill_store.get_locked, goal_id, page_size=self.settings.store_page_size
        )
        infos = []
        for skill in locked:
            check = await self._evaluate(skill)
            infos.append(LockedSkillInfo(
                skill=skill,
                missing_prerequisite_ids=check.unmet_prerequisite_ids,
                reasons=check.reasons,
            ))
        return infos
