import pytest

from tests.test_utils import RaceScenario


@pytest.fixture
def scenario():
    """Factory fixture to create scenarios."""

    def _builder(deck=None, side_stack=None, **kwargs):
        return RaceScenario(deck, side_stack, **kwargs)

    return _builder
