from __future__ import annotations

import pytest

from mentor_scheduling.clock import FixedClock
from tests._utils.fakes import NOW


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)
