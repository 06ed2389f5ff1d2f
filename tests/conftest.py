from datetime import datetime

import pytest

from chorebank import ChoreBank, ManualClock

# 2024-01-01 is a Monday.
MONDAY_MORNING = datetime(2024, 1, 1, 9, 0)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(MONDAY_MORNING)


@pytest.fixture
def bank(clock: ManualClock) -> ChoreBank:
    return ChoreBank(clock=clock)
