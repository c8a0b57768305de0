"""API test fixtures — file-backed SQLite database, seeded reference data, ASGI client.

Invariants:
    - Every test gets a fresh database under tmp_path
    - database.db_manager points at the test engine (routes and workspaces share it)
    - Every workspace opened by a test is closed before the engine is disposed

Design Decisions:
    - File-backed SQLite over :memory:: workspace background tasks and requests hold
      separate connections concurrently, which needs a real file
    - ASGITransport skips the lifespan, so the fixture wires the database itself
"""

from datetime import date

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

import enrollment.infrastructure.database as db_module
from enrollment.api.routes.workspace_helpers import close_all_workspaces
from enrollment.db.base import Base
from enrollment.infrastructure.database import DatabaseSessionManager
from enrollment.infrastructure.sync_status import sync_status_store
from enrollment.main import app
from enrollment.models import OrgUnit, Person, Program, program_org_units


@pytest.fixture
async def test_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_manager(test_engine):
    original = db_module.db_manager
    manager = DatabaseSessionManager.from_engine(test_engine)
    db_module.db_manager = manager
    yield manager
    await close_all_workspaces()
    db_module.db_manager = original
    for uid in ("anc", "tb", "hiv", "child"):
        sync_status_store.clear(uid)


@pytest.fixture
async def seeded(db_manager):
    async with db_manager.session() as session:
        session.add_all([
            Person(uid="tei-1", tracked_entity_type="person", attributes={"age": "30"}),
            Person(uid="tei-2", tracked_entity_type="person"),
            Program(
                uid="anc", name="Antenatal care", only_enroll_once=True,
                tracked_entity_type="person", enrollment_date_label="Date of first visit",
            ),
            Program(uid="tb", name="tb register", tracked_entity_type="person"),
            Program(uid="hiv", name="HIV care", color="#e53935"),
            Program(uid="child", name="Child health", tracked_entity_type="child"),
            OrgUnit(uid="ou-open", name="Open clinic"),
            OrgUnit(uid="ou-2", name="Second clinic", opening_date=date(2000, 1, 1)),
            OrgUnit(uid="ou-closed", name="Closed clinic", closed_date=date(2000, 1, 1)),
        ])
        await session.flush()
        await session.execute(program_org_units.insert(), [
            {"program_uid": "anc", "org_unit_uid": "ou-open"},
            {"program_uid": "anc", "org_unit_uid": "ou-closed"},
            {"program_uid": "tb", "org_unit_uid": "ou-open"},
            {"program_uid": "tb", "org_unit_uid": "ou-2"},
            {"program_uid": "hiv", "org_unit_uid": "ou-closed"},
        ])
        await session.commit()
    return db_manager


@pytest.fixture
async def client(seeded):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as ac:
        yield ac
