# -*- coding: utf-8 -*-

import typing as T
from datetime import datetime, timedelta, timezone

T_CLOCK = T.Callable[[], datetime]

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def get_utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_epoch_millis(dt: datetime) -> int:
    return (dt - EPOCH) // timedelta(milliseconds=1)


def from_epoch_millis(ms: T.Union[int, str]) -> datetime:
    return EPOCH + timedelta(milliseconds=int(ms))


def enum_value(value) -> str:
    """
    Accept either an enum member or its plain value.
    """
    return getattr(value, "value", value)
