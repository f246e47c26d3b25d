import pytest
from tests.test_utils import build_scenario


@pytest.fixture
def scenario():
    """Factory fixture to create scenarios."""

    def _builder(tasks=(), zones=(), teams=("alpha",), score=0, **kwargs):
        return build_scenario(tasks, zones, teams=teams, score=score, **kwargs)

    return _builder
