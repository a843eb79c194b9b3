"""Injectable wall clock (clinic local time, naive datetimes)"""

from datetime import date, datetime


class Clock:
    def now(self) -> datetime:
        return datetime.now()

    def today(self) -> date:
        return self.now().date()


class FixedClock(Clock):
    """Clock frozen at a given instant; advance() moves it forward"""

    def __init__(self, instant: datetime):
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def advance(self, delta) -> None:
        self.instant = self.instant + delta


_clock = Clock()


def get_clock() -> Clock:
    """Dependency injection for the clock; override in tests"""
    return _clock
