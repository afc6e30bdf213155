"""
Pytest fixtures for progression engine tests.
"""

import uuid
from datetime import date
from typing import AsyncGenerator, Callable, List

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import Settings
from src.database import build_engine
from src.kernel.models import Base, SkillMastery, SkillStatus, SkillType
from src.kernel.stores.memory import (
    InMemoryMilestoneStore,
    InMemorySkillStore,
    InMemoryWeekPlanStore,
)
from src.schemas.curriculum import GenerationContext, QuestDuration, StageDescription
from src.schemas.skill import Skill
from src.schemas.week_plan import WeekPlan


@pytest.fixture
def settings() -> Settings:
    """Default settings, independent of any .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def goal_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def quest_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def skill_store() -> InMemorySkillStore:
    return InMemorySkillStore()


@pytest.fixture
def week_plan_store() -> InMemoryWeekPlanStore:
    return InMemoryWeekPlanStore()


@pytest.fixture
def milestone_store() -> InMemoryMilestoneStore:
    return InMemoryMilestoneStore()


@pytest.fixture
def stages() -> List[StageDescription]:
    """Five stages of an introductory Python quest."""
    return [
        StageDescription(
            title="Write Your First Program",
            capability="Write and run a basic Python program",
            artifact="A working hello_world.py that prints output",
            designed_failure="Forget to save the file before running",
            consequence="Python runs the old version, output is wrong",
            recovery="Always save before running, check file timestamps",
            transfer="Apply to any new Python file you create",
            topics=["hello-world", "print", "running-python"],
        ),
        StageDescription(
            title="Work with Variables",
            capability="Create, assign, and modify variables",
            artifact="A script that stores and manipulates data in variables",
            designed_failure="Use a variable before assigning it",
            consequence="NameError crashes the program",
            recovery="Always assign before use, read error messages carefully",
            transfer="Apply variable patterns to any data type",
            topics=["variables", "assignment", "data-types"],
        ),
        StageDescription(
            title="Debug Common Errors",
            capability="Read and fix Python error messages",
            artifact="Fixed code with documented error analysis",
            designed_failure="Ignore the error message and guess",
            consequence="Waste time with wrong fixes, may introduce new bugs",
            recovery="Read error messages line by line",
            transfer="Apply debugging approach to any error type",
            topics=["debugging", "error-messages", "variables"],
        ),
        StageDescription(
            title="Build a Calculator",
            capability="Design and implement a basic calculator",
            artifact="A functioning calculator that handles basic operations",
            designed_failure="Forget to handle division by zero",
            consequence="Program crashes with ZeroDivisionError",
            recovery="Add input validation, handle edge cases explicitly",
            transfer="Apply defensive programming to any user input",
            topics=["design", "user-input", "arithmetic"],
        ),
        StageDescription(
            title="Share Your Code",
            capability="Document and share code with others",
            artifact="A documented project others can use",
            designed_failure="Skip documentation, assume code is self-explanatory",
            consequence="Others cannot use the code",
            recovery="Add comments, write README, get feedback from a peer",
            transfer="Apply documentation practices to any project",
            topics=["documentation", "sharing", "readme"],
        ),
    ]


@pytest.fixture
def make_context(goal_id, user_id, quest_id, stages) -> Callable[..., GenerationContext]:
    """Build a generation context; keyword overrides replace defaults."""

    def _make(practice_days: int = 5, week_start: int = 1, **overrides) -> GenerationContext:
        weeks = max(1, -(-practice_days // 5))
        values = dict(
            goal_id=goal_id,
            user_id=user_id,
            quest_id=quest_id,
            quest_title="Python Basics",
            stages=stages,
            duration=QuestDuration(
                practice_days=practice_days,
                week_start=week_start,
                week_end=week_start + weeks - 1,
            ),
            daily_minutes=30,
        )
        values.update(overrides)
        return GenerationContext(**values)

    return _make


@pytest.fixture
def make_skill(goal_id, user_id, quest_id) -> Callable[..., Skill]:
    """Build a minimal valid skill; keyword overrides replace defaults."""
    counter = {"order": 0}

    def _make(**overrides) -> Skill:
        counter["order"] += 1
        values = dict(
            quest_id=quest_id,
            goal_id=goal_id,
            user_id=user_id,
            title=f"Skill {counter['order']}",
            topic="python",
            topics=["python"],
            action="Write a short script",
            success_signal="Script runs and prints the expected output",
            locked_variables=["Use only the standard library"],
            estimated_minutes=20,
            skill_type=SkillType.FOUNDATION,
            status=SkillStatus.AVAILABLE,
            mastery=SkillMastery.NOT_STARTED,
            order=counter["order"],
            day_in_quest=counter["order"],
        )
        values.update(overrides)
        return Skill(**values)

    return _make


@pytest.fixture
def make_week(goal_id, user_id, quest_id) -> Callable[..., WeekPlan]:
    def _make(**overrides) -> WeekPlan:
        values = dict(
            goal_id=goal_id,
            user_id=user_id,
            quest_id=quest_id,
            week_number=1,
            start_date=date(2026, 1, 5),
            end_date=date(2026, 1, 11),
        )
        values.update(overrides)
        return WeekPlan(**values)

    return _make


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """File-backed SQLite engine with all progression tables."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'progression_test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    session_maker = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_maker() as session:
        yield session
        await session.rollback()
