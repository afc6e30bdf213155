"""Tests for engine construction and transactional sessions."""

import importlib.util
from pathlib import Path

import pytest
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.database import build_engine, init_db, session_scope
from src.kernel.models import Base
from src.kernel.stores.sql import SqlSkillStore


@pytest.fixture
def engine_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'scope.db'}"


class TestDatabase:
    """Tests for init_db and session_scope."""

    @pytest.mark.asyncio
    async def test_init_db_creates_tables(self, engine_url):
        engine = build_engine(engine_url)
        try:
            await init_db(engine)
            async with engine.connect() as conn:
                tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
            assert {"skills", "week_plans", "milestones"} <= set(tables)
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_session_scope_commits_and_rolls_back(self, engine_url, make_skill):
        engine = build_engine(engine_url)
        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        kept = make_skill()
        dropped = make_skill()
        try:
            await init_db(engine)
            async with session_scope(factory) as session:
                await SqlSkillStore(session).save(kept)

            with pytest.raises(RuntimeError):
                async with session_scope(factory) as session:
                    await SqlSkillStore(session).save(dropped)
                    raise RuntimeError("abort")

            async with session_scope(factory) as session:
                store = SqlSkillStore(session)
                assert await store.get(kept.id) == kept
                assert await store.get(dropped.id) is None
        finally:
            await engine.dispose()


def _load_revision(name):
    path = Path(__file__).resolve().parents[2] / "alembic" / "versions" / name
    spec = importlib.util.spec_from_file_location(path.stem, path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestMigrations:
    """The alembic revision must build the same tables as the ORM models."""

    @pytest.mark.asyncio
    async def test_initial_revision_matches_models(self, engine_url):
        revision = _load_revision("20261018_0001_progression_schema.py")

        def upgrade_and_reflect(sync_conn):
            with Operations.context(MigrationContext.configure(sync_conn)):
                revision.upgrade()
            inspector = inspect(sync_conn)
            return {
                table: {col["name"] for col in inspector.get_columns(table)}
                for table in inspector.get_table_names()
            }

        engine = build_engine(engine_url)
        try:
            async with engine.begin() as conn:
                reflected = await conn.run_sync(upgrade_and_reflect)
        finally:
            await engine.dispose()

        expected = {
            table.name: {col.name for col in table.columns}
            for table in Base.metadata.sorted_tables
        }
        assert reflected == expected
