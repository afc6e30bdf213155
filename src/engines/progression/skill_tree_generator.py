"""
Skill Tree Generator - decomposes a quest into a dependency-ordered skill set.

Shape of every generated tree:
- foundation skills: no prerequisites, available immediately
- building skills: 1-2 prerequisites among earlier skills of the same quest
- compound skills: combine >= 2 skills, possibly from earlier quests
- exactly one synthesis skill: depends on every other skill, scheduled last,
  and paired with the quest milestone
"""

import math
import re
import uuid
from itertools import combinations
from typing import Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from src.config import Settings, get_settings
from src.engines.progression.graph import find_cycle, topological_order
from src.kernel.errors import InvalidStateError
from src.kernel.models.milestone import MilestoneStatus
from src.kernel.models.skill import (
    SKILL_TYPE_DEPTH,
    SkillDifficulty,
    SkillMastery,
    SkillStatus,
    SkillType,
)
from src.logging_config import get_logger
from src.schemas.curriculum import (
    GenerationContext,
    GenerationWarning,
    QuestDuration,
    SkillDistribution,
    StageDescription,
    UserLevel,
)
from src.schemas.skill import Milestone, Skill

logger = get_logger(__name__)

ACTION_VERBS = (
    "create", "build", "write", "implement", "design", "develop",
    "configure", "setup", "install", "deploy", "test", "debug",
    "refactor", "optimize", "profile", "analyze", "document", "explain",
    "demonstrate", "present", "teach", "review", "fix", "modify",
    "adapt", "extend", "integrate", "connect", "validate", "verify",
    "measure", "evaluate", "compare", "research", "explore", "investigate",
    "identify", "discover", "practice", "rehearse", "drill", "exercise",
    "apply", "master", "complete", "finish", "deliver", "ship",
    "use", "combine", "chain", "filter", "transform", "parse",
)

MIN_SUCCESS_SIGNAL_LENGTH = 10
COMPOUND_MINUTES_FACTOR = 0.6

_CAPABILITY_PATTERN = re.compile(r"^(?:can|able to)\s+(.+)$", re.IGNORECASE)
_LEADING_ARTICLE = re.compile(r"^(?:a|an|the)\s+", re.IGNORECASE)
_DONE_PREFIXES = ("completed", "finished", "working", "functional", "tested")


class TypeDistribution(BaseModel):
    """Skill counts per type."""

    foundation: int = 0
    building: int = 0
    compound: int = 0
    synthesis: int = 0

    @property
    def total(self) -> int:
        return self.foundation + self.building + self.compound + self.synthesis


class GenerationResult(BaseModel):
    """A complete, scheduled skill tree for one quest."""

    quest_id: uuid.UUID
    skills: List[Skill]
    synthesis_skill_id: uuid.UUID
    root_skill_ids: List[uuid.UUID]
    distribution: TypeDistribution
    milestone: Milestone
    cross_quest_skill_ids: List[uuid.UUID] = []
    warnings: List[GenerationWarning] = []


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _spread(count: int, pool_size: int) -> List[Tuple[int, int, int]]:
    """Split count skills over pool_size stages as (stage position, part, parts)."""
    base, extra = divmod(count, pool_size)
    slots = []
    for pos in range(pool_size):
        parts = base + (1 if pos < extra else 0)
        for part in range(1, parts + 1):
            slots.append((pos, part, parts))
    return slots


def _normalize(topics: Iterable[str]) -> List[str]:
    return [t.lower().strip() for t in topics if t and t.strip()]


def _skill_topics(skill: Skill) -> List[str]:
    return _normalize(skill.topics or [skill.topic])


def topic_overlap(left: Iterable[str], right: Iterable[str]) -> int:
    """Count topic pairs that match exactly or by substring."""
    right_norm = _normalize(right)
    score = 0
    for a in _normalize(left):
        if any(a == b or a in b or b in a for b in right_norm):
            score += 1
    return score


def starts_with_action_verb(text: str) -> bool:
    words = text.strip().split()
    if not words:
        return False
    first = words[0].lower()
    return any(first == verb or first.startswith(verb) for verb in ACTION_VERBS)


def capability_to_action(capability: str) -> str:
    """Turn a capability statement into a verb-first action."""
    capability = capability.strip()
    if starts_with_action_verb(capability):
        return capability
    match = _CAPABILITY_PATTERN.match(capability)
    if match:
        action = match.group(1).strip()
        return action[:1].upper() + action[1:]
    return f"Practice: {capability}"


def artifact_to_success_signal(artifact: str) -> str:
    """Turn an artifact description into a binary success signal."""
    cleaned = _LEADING_ARTICLE.sub("", artifact.strip())
    if cleaned.lower().startswith(_DONE_PREFIXES):
        return cleaned
    return f"Completed: {cleaned}"


def validate_skill(skill: Skill, daily_minutes: int, min_minutes: int = 10) -> List[str]:
    """Return every validation problem with the skill (empty when valid)."""
    problems = []
    if not starts_with_action_verb(skill.action):
        problems.append(f'Action must start with a verb: "{skill.action[:30]}..."')
    if len(skill.success_signal.strip()) < MIN_SUCCESS_SIGNAL_LENGTH:
        problems.append("Success signal too short or missing")
    if not skill.locked_variables:
        problems.append("Missing locked variables")
    if skill.estimated_minutes > daily_minutes:
        problems.append(
            f"Exceeds daily budget ({skill.estimated_minutes} > {daily_minutes} min)"
        )
    if skill.estimated_minutes < min_minutes:
        problems.append(f"Too short ({skill.estimated_minutes} < {min_minutes} min)")
    if skill.is_compound and len(skill.component_skill_ids) < 2:
        problems.append("Compound skill needs at least 2 components")
    return problems


def validate_tree(skills: Sequence[Skill]) -> List[GenerationWarning]:
    """Structural checks over a whole quest tree."""
    warnings = []
    ids = {skill.id for skill in skills}
    synthesis = [s for s in skills if s.is_synthesis]
    if len(synthesis) != 1:
        warnings.append(GenerationWarning(message=f"Expected 1 synthesis skill, found {len(synthesis)}"))
    for skill in skills:
        is_root = not skill.prerequisite_skill_ids
        if skill.skill_type == SkillType.FOUNDATION and not is_root:
            warnings.append(GenerationWarning(
                skill_id=skill.id,
                skill_title=skill.title,
                message="Foundation skill has prerequisites",
            ))
        if skill.skill_type != SkillType.FOUNDATION and is_root:
            warnings.append(GenerationWarning(
                skill_id=skill.id,
                skill_title=skill.title,
                message="Non-foundation skill has no prerequisites",
            ))
        # only same-quest ids can be checked here
        missing = [
            pid for pid in skill.prerequisite_skill_ids
            if pid not in ids and pid not in skill.component_skill_ids
        ]
        if missing:
            warnings.append(GenerationWarning(
                skill_id=skill.id,
                skill_title=skill.title,
                message=f"{len(missing)} prerequisite(s) not in this quest or its components",
            ))
    cycle = find_cycle(skills)
    if cycle:
        warnings.append(GenerationWarning(message=f"Prerequisite cycle through {len(cycle) - 1} skills"))
    return warnings


class SkillTreeGenerator:
    """
    Builds the skill tree for one quest.

    Sizing: min(stages * max_skills_per_stage, practice days), one slot
    always reserved for synthesis. Generation is deterministic for a given
    context apart from the generated ids.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def generate(self, context: GenerationContext) -> GenerationResult:
        stages = [s for s in context.stages if s.title.strip() and s.capability.strip()]
        if not stages:
            raise InvalidStateError(
                "No usable stages for quest",
                {"quest_id": str(context.quest_id)},
            )

        stage_derived = len(stages) * self.settings.max_skills_per_stage
        total = min(stage_derived, context.duration.practice_days)
        distribution = context.distribution or SkillDistribution(
            foundation_percent=self.settings.foundation_percent,
            building_percent=self.settings.building_percent,
            compound_percent=self.settings.compound_percent,
        )
        targets = self.calculate_target_counts(total, distribution)
        logger.info(
            "Generating skill tree for quest '%s'",
            context.quest_title,
            extra={
                "quest_id": str(context.quest_id),
                "target_total": targets.total,
                "stages": len(stages),
            },
        )

        foundations = self._generate_foundation(context, stages, targets.foundation)
        buildings = self._generate_building(context, stages, targets.building, foundations)

        quest_topics = _normalize(t for stage in stages for t in stage.topics)
        prior = self.find_relevant_prior_skills(
            quest_topics,
            self._eligible_prior_skills(context),
        )
        compounds = self._generate_compound(
            context, targets.compound, foundations, buildings, prior
        )

        base = foundations + buildings + compounds
        synthesis, milestone = self.create_synthesis_skill(base, context, stages[-1])
        skills = self._assign_scheduling([*base, synthesis], context.duration)

        warnings = self._collect_warnings(skills, context.daily_minutes)
        prior_ids = {p.id for p in prior}
        cross_ids: List[uuid.UUID] = []
        for skill in skills:
            for component_id in skill.component_skill_ids:
                if component_id in prior_ids and component_id not in cross_ids:
                    cross_ids.append(component_id)

        result = GenerationResult(
            quest_id=context.quest_id,
            skills=skills,
            synthesis_skill_id=synthesis.id,
            root_skill_ids=[s.id for s in skills if s.skill_type == SkillType.FOUNDATION],
            distribution=TypeDistribution(
                foundation=len(foundations),
                building=len(buildings),
                compound=len(compounds),
                synthesis=1,
            ),
            milestone=milestone,
            cross_quest_skill_ids=cross_ids,
            warnings=warnings,
        )
        logger.info(
            "Generated %d skills (%d warnings)",
            len(skills),
            len(warnings),
            extra={
                "quest_id": str(context.quest_id),
                "foundation": result.distribution.foundation,
                "building": result.distribution.building,
                "compound": result.distribution.compound,
                "cross_quest": len(cross_ids),
            },
        )
        return result

    # ------------------------------------------------------------------
    # Sizing
    # ------------------------------------------------------------------

    @staticmethod
    def calculate_target_counts(
        total_slots: int,
        distribution: SkillDistribution,
    ) -> TypeDistribution:
        """
        Allocate slots to types. One slot is synthesis; the rest follow the
        distribution with any remainder going to building. At least one
        foundation exists whenever any non-synthesis slot does, and compound
        slots fold into building when fewer than two base skills exist.
        """
        if total_slots < 1:
            return TypeDistribution()
        available = total_slots - 1
        if available == 0:
            return TypeDistribution(synthesis=1)

        foundation = max(1, _round_half_up(available * distribution.foundation_percent))
        building = _round_half_up(available * distribution.building_percent)
        compound = _round_half_up(available * distribution.compound_percent)

        # trim overflow from the most composed types first
        overflow = foundation + building + compound - available
        if overflow > 0:
            taken = min(overflow, compound)
            compound -= taken
            overflow -= taken
        if overflow > 0:
            taken = min(overflow, building)
            building -= taken
            overflow -= taken
        if overflow > 0:
            foundation -= overflow

        building += available - (foundation + building + compound)
        if compound and foundation + building < 2:
            building += compound
            compound = 0

        return TypeDistribution(
            foundation=foundation,
            building=building,
            compound=compound,
            synthesis=1,
        )

    # ------------------------------------------------------------------
    # Per-type generation
    # ------------------------------------------------------------------

    def _difficulty(self, skill_type: SkillType, stage_index: int, level: UserLevel) -> SkillDifficulty:
        if skill_type == SkillType.SYNTHESIS:
            return SkillDifficulty.SYNTHESIS
        if skill_type == SkillType.COMPOUND:
            return SkillDifficulty.CHALLENGE
        if skill_type == SkillType.BUILDING:
            return SkillDifficulty.PRACTICE
        if stage_index == 0 and level != UserLevel.ADVANCED:
            return SkillDifficulty.INTRO
        return SkillDifficulty.PRACTICE

    def _skill_from_stage(
        self,
        context: GenerationContext,
        stage: StageDescription,
        stage_index: int,
        skill_type: SkillType,
        part: int,
        parts: int,
    ) -> Skill:
        title = f"{stage.title} (Part {part})" if parts > 1 else stage.title
        is_foundation = skill_type == SkillType.FOUNDATION
        return Skill(
            quest_id=context.quest_id,
            goal_id=context.goal_id,
            user_id=context.user_id,
            title=title,
            topic=stage.topics[0] if stage.topics else "general",
            topics=list(stage.topics),
            action=capability_to_action(stage.capability),
            success_signal=artifact_to_success_signal(stage.artifact),
            locked_variables=["Don't change approach mid-exercise", "Complete in single session"],
            estimated_minutes=min(context.daily_minutes, self.settings.default_skill_minutes),
            skill_type=skill_type,
            depth=SKILL_TYPE_DEPTH[skill_type],
            difficulty=self._difficulty(skill_type, stage_index, context.user_level),
            adversarial_element=stage.designed_failure or None,
            failure_mode=stage.consequence or None,
            recovery_steps=stage.recovery or None,
            transfer_scenario=stage.transfer or None,
            source_stage_title=stage.title,
            source_stage_index=stage_index + 1,
            status=SkillStatus.AVAILABLE if is_foundation else SkillStatus.LOCKED,
            mastery=SkillMastery.NOT_STARTED,
        )

    def _generate_foundation(
        self,
        context: GenerationContext,
        stages: List[StageDescription],
        count: int,
    ) -> List[Skill]:
        if count <= 0:
            return []
        pool = stages[:2]
        return [
            self._skill_from_stage(context, pool[pos], pos, SkillType.FOUNDATION, part, parts)
            for pos, part, parts in _spread(count, len(pool))
        ]

    def _pick_building_prerequisites(self, stage: StageDescription, candidates: List[Skill]) -> List[Skill]:
        """Most topic-relevant earlier skills, else the latest one."""
        scored = [
            (topic_overlap(stage.topics, _skill_topics(c)), i, c)
            for i, c in enumerate(candidates)
        ]
        relevant = sorted(
            (entry for entry in scored if entry[0] > 0),
            key=lambda entry: (-entry[0], entry[1]),
        )
        if relevant:
            return [c for _, _, c in relevant[: self.settings.max_building_prerequisites]]
        return [candidates[-1]]

    def _generate_building(
        self,
        context: GenerationContext,
        stages: List[StageDescription],
        count: int,
        foundations: List[Skill],
    ) -> List[Skill]:
        if count <= 0 or not foundations:
            return []
        offset = 1 if len(stages) > 1 else 0
        pool = stages[offset:offset + 3]
        buildings: List[Skill] = []
        for pos, part, parts in _spread(count, len(pool)):
            stage = pool[pos]
            skill = self._skill_from_stage(
                context, stage, pos + offset, SkillType.BUILDING, part, parts
            )
            prereqs = self._pick_building_prerequisites(stage, foundations + buildings)
            skill.prerequisite_skill_ids = [p.id for p in prereqs]
            buildings.append(skill)
        return buildings

    @staticmethod
    def _eligible_prior_skills(context: GenerationContext) -> List[Skill]:
        """Prior skills of other quests, limited to completed quests when those are given."""
        completed = set(context.completed_quest_ids)
        return [
            s for s in context.prior_skills
            if s.quest_id != context.quest_id
            and (not completed or s.quest_id in completed)
        ]

    def find_relevant_prior_skills(
        self,
        topics: Sequence[str],
        prior_skills: Sequence[Skill],
    ) -> List[Skill]:
        """
        Prior skills worth reusing: topic overlap with the quest, plus a
        bounded number of mastered skills even without overlap.
        """
        relevant: List[Skill] = []
        extra: List[Skill] = []
        for skill in prior_skills:
            if topic_overlap(_skill_topics(skill), topics) > 0:
                relevant.append(skill)
            elif skill.mastery == SkillMastery.MASTERED:
                extra.append(skill)
        return relevant + extra[: self.settings.max_extra_prior_skills]

    def _generate_compound(
        self,
        context: GenerationContext,
        count: int,
        foundations: List[Skill],
        buildings: List[Skill],
        prior: List[Skill],
    ) -> List[Skill]:
        if count <= 0:
            return []
        base = foundations + buildings
        pairs: List[List[Skill]] = []
        seen = set()

        def add(components: List[Skill]) -> None:
            key = frozenset(c.id for c in components)
            if len(pairs) < count and len(key) >= 2 and key not in seen:
                seen.add(key)
                pairs.append(components)

        if buildings:
            for i, foundation in enumerate(foundations):
                add([foundation, buildings[i % len(buildings)]])

        reusable = [
            p for p in prior
            if p.mastery == SkillMastery.MASTERED and not p.is_synthesis
        ]
        for prior_skill in reusable[: self.settings.max_cross_quest_compounds]:
            partner = next((s for s in reversed(base) if s.topic != prior_skill.topic), None)
            if partner is not None:
                add([partner, prior_skill])

        for left, right in zip(buildings, buildings[1:]):
            add([left, right])
        for left, right in combinations(base, 2):
            add([left, right])

        return [self.create_compound_skill(components, context) for components in pairs]

    def create_compound_skill(self, components: Sequence[Skill], context: GenerationContext) -> Skill:
        """Combine two or more skills into one exercise. Components may come from other quests."""
        if len(components) < 2:
            raise InvalidStateError(
                "Compound skill requires at least 2 components",
                {"quest_id": str(context.quest_id), "components": len(components)},
            )
        other_quests: List[uuid.UUID] = []
        for component in components:
            if component.quest_id != context.quest_id and component.quest_id not in other_quests:
                other_quests.append(component.quest_id)

        topics: List[str] = []
        for component in components:
            for topic in component.topics or [component.topic]:
                if topic not in topics:
                    topics.append(topic)

        titles = [c.title for c in components]
        minutes = min(
            self.settings.max_skill_minutes,
            _round_half_up(sum(c.estimated_minutes for c in components) * COMPOUND_MINUTES_FACTOR),
        )
        return Skill(
            quest_id=context.quest_id,
            goal_id=context.goal_id,
            user_id=context.user_id,
            title=" + ".join(titles[:2]),
            topic=components[0].topic or "compound",
            topics=topics,
            action=f"Combine {' and '.join(t.lower() for t in titles)} to solve a multi-step problem",
            success_signal="Solution uses all component skills correctly and produces expected output",
            locked_variables=["Don't simplify the problem", "Use all components"],
            estimated_minutes=minutes,
            skill_type=SkillType.COMPOUND,
            depth=SKILL_TYPE_DEPTH[SkillType.COMPOUND],
            difficulty=SkillDifficulty.CHALLENGE,
            is_compound=True,
            component_skill_ids=[c.id for c in components],
            component_quest_ids=other_quests,
            combination_context=", ".join(
                f"{c.title} ({' '.join(c.action.split()[:3])}...)" for c in components
            ),
            prerequisite_skill_ids=[c.id for c in components],
            prerequisite_quest_ids=list(other_quests),
            adversarial_element="Miss one component or use them in isolation instead of combining",
            failure_mode="Solution doesn't integrate all skills, missing the combined benefit",
            recovery_steps=(
                "Identify which component is missing or underused, "
                "practice that component, then retry the combination"
            ),
            status=SkillStatus.LOCKED,
        )

    def create_synthesis_skill(
        self,
        quest_skills: Sequence[Skill],
        context: GenerationContext,
        ship_stage: Optional[StageDescription] = None,
    ) -> Tuple[Skill, Milestone]:
        """Build the capstone skill over every non-synthesis skill, plus its milestone."""
        components = [s for s in quest_skills if not s.is_synthesis]
        if len(components) < 2:
            raise InvalidStateError(
                "Synthesis skill requires at least 2 quest skills",
                {"quest_id": str(context.quest_id), "components": len(components)},
            )
        stage = ship_stage or context.stages[-1]

        cross_quests: List[uuid.UUID] = []
        for component in components:
            for quest_id in component.component_quest_ids:
                if quest_id not in cross_quests:
                    cross_quests.append(quest_id)

        synthesis = Skill(
            quest_id=context.quest_id,
            goal_id=context.goal_id,
            user_id=context.user_id,
            title=f"Milestone: {stage.title}",
            topic="synthesis",
            topics=list(stage.topics),
            action=capability_to_action(stage.capability),
            success_signal=artifact_to_success_signal(stage.artifact),
            locked_variables=["Don't skip any component", "Complete all acceptance criteria"],
            estimated_minutes=min(self.settings.max_skill_minutes, self.settings.synthesis_skill_minutes),
            skill_type=SkillType.SYNTHESIS,
            depth=SKILL_TYPE_DEPTH[SkillType.SYNTHESIS],
            difficulty=SkillDifficulty.SYNTHESIS,
            is_compound=True,
            component_skill_ids=[c.id for c in components],
            component_quest_ids=cross_quests,
            combination_context=f"Combines all {len(components)} skills from this quest",
            prerequisite_skill_ids=[c.id for c in components],
            adversarial_element=stage.designed_failure or None,
            failure_mode=stage.consequence or None,
            recovery_steps=stage.recovery or None,
            transfer_scenario=stage.transfer or None,
            source_stage_title=stage.title,
            source_stage_index=len(context.stages),
            status=SkillStatus.LOCKED,
        )
        milestone = Milestone(
            quest_id=context.quest_id,
            goal_id=context.goal_id,
            synthesis_skill_id=synthesis.id,
            title=stage.title,
            description=f"Complete the {context.quest_title} quest by demonstrating all learned skills",
            artifact=stage.artifact,
            acceptance_criteria=[
                "All component skills demonstrated",
                synthesis.success_signal,
                "No critical errors or failures",
                "Can explain key decisions",
            ],
            estimated_minutes=synthesis.estimated_minutes,
            required_mastery_percent=self.settings.milestone_required_mastery,
            status=MilestoneStatus.LOCKED,
        )
        return synthesis, milestone

    # ------------------------------------------------------------------
    # Scheduling and validation
    # ------------------------------------------------------------------

    def _assign_scheduling(self, skills: List[Skill], duration: QuestDuration) -> List[Skill]:
        """Order skills by dependencies and map order onto weeks and days."""
        per_week = self.settings.practice_days_per_week
        scheduled = []
        for index, skill in enumerate(topological_order(skills)):
            day_in_quest = index + 1
            week_in_quest = (index // per_week) + 1
            scheduled.append(skill.model_copy(update={
                "order": day_in_quest,
                "day_in_quest": day_in_quest,
                "day_in_week": (index % per_week) + 1,
                "week_number": duration.week_start + week_in_quest - 1,
            }))
        return scheduled

    def _collect_warnings(self, skills: List[Skill], daily_minutes: int) -> List[GenerationWarning]:
        warnings = []
        for skill in skills:
            for problem in validate_skill(skill, daily_minutes, self.settings.min_skill_minutes):
                warnings.append(GenerationWarning(
                    skill_id=skill.id,
                    skill_title=skill.title,
                    message=problem,
                ))
        warnings.extend(validate_tree(skills))
        for warning in warnings:
            logger.debug("Skill validation warning: %s", warning.message, extra={"skill": warning.skill_title})
        return warnings
