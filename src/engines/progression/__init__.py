"""
Progression Engine - skill trees, mastery, unlocks and weekly scheduling.

Flow:
- SkillTreeGenerator builds a quest's skills once, at quest start
- WeekTracker schedules them into five-day week plans
- MasteryService records drill outcomes
- UnlockService cascades availability when a skill is mastered
- WeekTracker carries unfinished skills into the next week
"""

from src.engines.progression.engine import DrillRecord, ProgressionEngine, QuestStart
from src.engines.progression.mastery_service import (
    MasteryService,
    MasterySummary,
    OutcomeResult,
    calculate_mastery,
)
from src.engines.progression.skill_tree_generator import (
    GenerationResult,
    SkillTreeGenerator,
    TypeDistribution,
)
from src.engines.progression.unlock_service import (
    LockedSkillInfo,
    MilestoneAvailability,
    PrerequisiteCheckResult,
    UnlockResult,
    UnlockService,
)
from src.engines.progression.week_tracker import (
    WeekCompletionResult,
    WeeklySummary,
    WeekTracker,
)

__all__ = [
    "ProgressionEngine",
    "QuestStart",
    "DrillRecord",
    "SkillTreeGenerator",
    "GenerationResult",
    "TypeDistribution",
    "UnlockService",
    "UnlockResult",
    "PrerequisiteCheckResult",
    "MilestoneAvailability",
    "LockedSkillInfo",
    "MasteryService",
    "MasterySummary",
    "OutcomeResult",
    "calculate_mastery",
    "WeekTracker",
    "WeekCompletionResult",
    "WeeklySummary",
]
