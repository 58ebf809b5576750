# -*- coding: utf-8 -*-
"""日期工具。

所有持久化和参与比较的日期都是补零的 YYYY-MM-DD 字符串；
带时区的时间先换算为本地时间再取日期。
"""
from datetime import date, datetime
from typing import Optional, Union

DateLike = Union[date, datetime, str]
DATE_FORMAT = "%Y-%m-%d"


def to_date(value: Optional[DateLike] = None) -> date:
    """
    Truncates a date, datetime or ISO string to its local calendar date. None means today.

    Raises:
        ValueError: the string is not a recognisable date.
    """
    if value is None:
        return date.today()
    if isinstance(value, datetime):
        return (value.astimezone() if value.tzinfo is not None else value).date()
    if isinstance(value, date):
        return value
    text = value.strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        # non-padded dates such as 2024-2-5
        return datetime.strptime(text.split("T")[0].split(" ")[0], DATE_FORMAT).date()
    return to_date(parsed)


def format_date(value: date) -> str:
    """YYYY-MM-DD, zero padded; the only format persisted and compared."""
    return value.strftime(DATE_FORMAT)


def normalize_date(value: str) -> str:
    return format_date(to_date(value))


def check_date(value: str) -> str:
    """Keeps value as given once it is known to parse."""
    to_date(value)
    return value
