from datetime import datetime, timedelta, timezone
from itertools import count

import pytest


class SequentialIds:
    def __init__(self, prefix: str = "id"):
        self._counter = count(1)
        self._prefix = prefix

    def __call__(self) -> str:
        return f"{self._prefix}-{next(self._counter)}"


class SteppingClock:
    """Returns a strictly increasing UTC time, one second per call."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def id_factory():
    return SequentialIds()


@pytest.fixture
def clock():
    return SteppingClock()
