# -*- coding: utf-8 -*-
"""Calendar helpers for the day/week/history views.

Dates travel as zero-padded ``YYYY-MM-DD`` strings so that lexicographic order
matches calendar order.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import List, Union

DateLike = Union[date, datetime, str]

_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")


def parse_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as exc:
        raise ValueError(f"Invalid date (expected YYYY-MM-DD): {value!r}") from exc


def format_date(value: DateLike) -> str:
    return parse_date(value).isoformat()


def today_str() -> str:
    return date.today().isoformat()


def is_valid_date(value: str) -> bool:
    if not isinstance(value, str) or not _DATE_RE.fullmatch(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def week_start(value: DateLike) -> date:
    """Monday of the week containing ``value``."""
    d = parse_date(value)
    return d - timedelta(days=d.weekday())


def week_end(value: DateLike) -> date:
    return week_start(value) + timedelta(days=6)


def week_dates(value: DateLike) -> List[str]:
    start = week_start(value)
    return [(start + timedelta(days=i)).isoformat() for i in range(7)]
