"""
Stores - persistence contracts plus in-memory and SQL implementations.
"""

from src.kernel.stores.base import (
    MilestoneStore,
    SkillStore,
    WeekPlanStore,
    fetch_all,
)
from src.kernel.stores.memory import (
    InMemoryMilestoneStore,
    InMemorySkillStore,
    InMemoryWeekPlanStore,
)
from src.kernel.stores.sql import SqlMilestoneStore, SqlSkillStore, SqlWeekPlanStore

__all__ = [
    "SkillStore",
    "WeekPlanStore",
    "MilestoneStore",
    "fetch_all",
    "InMemorySkillStore",
    "InMemoryWeekPlanStore",
    "InMemoryMilestoneStore",
    "SqlSkillStore",
    "SqlWeekPlanStore",
    "SqlMilestoneStore",
]
