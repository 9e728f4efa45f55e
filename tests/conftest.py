"""Shared pytest fixtures."""

from unittest.mock import patch

import pytest
import yaml
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from postboard.config import Settings
from postboard.db.base import Base
from postboard.db.models import Comment, Post, Tag, User
from postboard.lib.hooks import hooks


@pytest.fixture
def temp_app_yaml(tmp_path):
    """Create a temporary app.yaml file for testing."""
    config_path = tmp_path / "app.yaml"

    def _create_config(config: dict):
        with open(config_path, "w") as f:
            yaml.safe_dump(config, f)
        return config_path

    return _create_config


@pytest.fixture
def mock_config_path(temp_app_yaml):
    """Patch get_config_path to point at a temporary app.yaml."""
    patchers = []

    def _mock(config: dict):
        config_path = temp_app_yaml(config)
        patcher = patch("postboard.config.get_config_path", return_value=config_path)
        patchers.append(patcher)
        return patcher.start()

    yield _mock
    for patcher in patchers:
        patcher.stop()


@pytest.fixture
def clean_hooks():
    """Save and restore hooks state around a test."""
    original_filters = hooks._filters.copy()
    original_actions = hooks._actions.copy()
    yield
    hooks._filters = original_filters
    hooks._actions = original_actions


@pytest.fixture
def settings():
    """Default settings, independent of any app.yaml in the working directory."""
    return Settings()


@pytest.fixture
async def engine(tmp_path):
    """A fresh SQLite database file with the full schema."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'postboard.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def seeded(session_maker):
    """Users 1-3, tags 1-2, post 7 by user 1 and comment 11 on it by user 2."""
    async with session_maker() as session:
        session.add_all(
            [
                User(id=1, full_name="Ada Lovelace", email="ada@example.com", avatar="ada.png"),
                User(id=2, full_name="Alan Turing", email="alan@example.com"),
                User(id=3, full_name="Grace Hopper", email="grace@example.com"),
                Tag(id=1, name="python"),
                Tag(id=2, name="databases"),
            ]
        )
        await session.flush()
        session.add(Post(id=7, title="Why async?", question="When should I use asyncio?", user_id=1))
        await session.flush()
        session.add(Comment(id=11, post_id=7, user_id=2, content="When you wait on I/O."))
        await session.commit()
    return {"post_id": 7, "comment_id": 11, "users": (1, 2, 3)}


@pytest.fixture
async def db_session(session_maker, seeded):
    async with session_maker() as session:
        yield session
