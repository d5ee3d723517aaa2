"""
Shared fixtures for the turnkeeper test suite.
"""
import asyncio
import os

import pytest

# Keep configuration loading independent of the developer's environment
os.environ.setdefault("GOOGLE_CLOUD_PROJECT", "test-project")

from turnkeeper.interview.engine import TurnTakingEngine
from turnkeeper.interview.testing import create_mock_interview_setup


@pytest.fixture
def make_setup(tmp_path):
    """Factory for a fake engine setup rooted in a temporary workdir."""
    def factory(**kwargs):
        kwargs.setdefault("workdir", str(tmp_path / "interviews"))
        return create_mock_interview_setup(**kwargs)
    return factory


@pytest.fixture
def make_engine(make_setup):
    """Factory returning (engine, setup) wired entirely to fakes."""
    def factory(config=None, finalizer=None, **kwargs):
        setup = make_setup(**kwargs)
        engine = TurnTakingEngine(
            session=setup["session"],
            capture=setup["capture"],
            render=setup["render"],
            policy=setup["policy"],
            store=setup["store"],
            config=config or setup["config"],
            finalizer=finalizer,
        )
        return engine, setup
    return factory


async def wait_for_state(engine, state, timeout: float = 2.0) -> None:
    """Poll until the engine reaches `state`."""
    async def poll():
        while engine.state != state:
            await asyncio.sleep(0.005)
    await asyncio.wait_for(poll(), timeout)
