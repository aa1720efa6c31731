"""Test fixtures for ConvoProbe."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from convoprobe.engine.types import PersonaMessage, TokensUsage
from convoprobe.models import Base
from convoprobe.schemas.connector import Connector
from convoprobe.schemas.persona import Persona
from convoprobe.schemas.scenario import Scenario
from convoprobe.storage.sql import SqlStore
from factories import make_connector, make_persona, make_scenario


@pytest.fixture
def scenario() -> Scenario:
    return make_scenario()


@pytest.fixture
def connector() -> Connector:
    return make_connector()


@pytest.fixture
def persona() -> Persona:
    return make_persona()


@pytest.fixture
def persona_message() -> PersonaMessage:
    return PersonaMessage(content="Hi, I'd like to book a table.")


@pytest.fixture
def usage() -> TokensUsage:
    return TokensUsage(input_tokens=10, output_tokens=5, total_tokens=15)


@pytest_asyncio.fixture
async def sql_store(tmp_path) -> AsyncGenerator[SqlStore, None]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'convoprobe.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield SqlStore(async_sessionmaker(engine, expire_on_commit=False))
    await engine.dispose()
