# -*- coding: utf-8 -*-

import typing as T
from datetime import datetime, timedelta, timezone


class FakeClock:
    """
    Manually advanced clock, used to drive lease expiry deterministically.

    Example::

        >>> clock = FakeClock(datetime(2024, 1, 1, tzinfo=timezone.utc))
        >>> clock.advance(seconds=30)
        >>> clock()
        datetime.datetime(2024, 1, 1, 0, 0, 30, tzinfo=datetime.timezone.utc)
    """

    def __init__(self, now: T.Optional[datetime] = None):
        if now is None:
            now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
