from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from workclock.db import Database
from workclock.events import ToastBus
from workclock.notifications import GrantedPermission, NotificationGateway
from workclock.tracker import WorkSessionTracker

# Monday morning.
START = datetime(2026, 2, 2, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(START)


@pytest.fixture
def db():
    database = Database(":memory:")
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def toasts() -> ToastBus:
    return ToastBus()


@pytest.fixture
def gateway(toasts) -> NotificationGateway:
    return NotificationGateway(toasts, permission=GrantedPermission())


@pytest.fixture
def make_tracker(db, gateway, clock):
    def factory(**kwargs) -> WorkSessionTracker:
        return WorkSessionTracker(db=db, gateway=gateway, tz=ZoneInfo("UTC"), clock=clock, **kwargs)

    return factory


@pytest.fixture
def tracker(make_tracker) -> WorkSessionTracker:
    return make_tracker()
