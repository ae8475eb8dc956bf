"""带符号的 ISO-8601 时长编解码

线格式: (-)?P(nY)?(nM)?(nW)?(nD)?(T(nH)?(nM)?(nS)?)?
负号表示锚点之前，非负表示锚点当时或之后。年按 365 天、月按 30 天、周按 7 天近似，不考虑日历。
编码端一次只输出一个单位；解码端兼容多单位混写的旧数据。
"""

from __future__ import annotations

import re
from typing import NamedTuple, Optional

__all__ = [
    "MINUTE_MS", "HOUR_MS", "DAY_MS", "UNIT_MS",
    "OffsetParts", "parse_duration", "format_duration", "parse_offset",
    "is_sub_day_offset", "format_duration_for_display", "format_short_offset",
]

SECOND_MS = 1000
MINUTE_MS = 60 * SECOND_MS
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS
WEEK_MS = 7 * DAY_MS
MONTH_MS = 30 * DAY_MS
YEAR_MS = 365 * DAY_MS

UNIT_MS = {
    "minutes": MINUTE_MS,
    "hours": HOUR_MS,
    "days": DAY_MS,
    "weeks": WEEK_MS,
}

_DURATION_PATTERN = re.compile(
    r"^(-?)P(?:(\d+)Y)?(?:(\d+)M)?(?:(\d+)W)?(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?)?$"
)
_SINGLE_UNIT_PATTERN = re.compile(r"^(-?)P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?)?$")
_SUB_DAY_PATTERN = re.compile(r"^-?PT")
_DAY_OR_LONGER_PATTERN = re.compile(r"\d+[DWY]")


class OffsetParts(NamedTuple):
    value: int
    unit: str       # "minutes" / "hours" / "days"
    direction: str  # "before" / "after"


def parse_duration(duration) -> Optional[int]:
    """时长字符串 -> 带符号毫秒数，格式错误返回 None"""
    if not isinstance(duration, str):
        return None
    match = _DURATION_PATTERN.match(duration.strip())
    if not match:
        return None

    sign, years, months, weeks, days, hours, minutes, seconds = match.groups()
    total = 0
    for amount, unit_ms in (
        (years, YEAR_MS),
        (months, MONTH_MS),
        (weeks, WEEK_MS),
        (days, DAY_MS),
        (hours, HOUR_MS),
        (minutes, MINUTE_MS),
        (seconds, SECOND_MS),
    ):
        if amount:
            total += int(amount) * unit_ms

    return -total if sign == "-" else total


def format_duration(value: int, unit: str, direction: str) -> str:
    """(数值, 单位, 方向) -> 时长字符串，例如 (30, "minutes", "before") -> "-PT30M" """
    if value == 0:
        return "PT0S"
    if unit not in UNIT_MS:
        raise ValueError(f"不支持的时长单位: {unit}")

    if unit == "minutes":
        body = f"PT{value}M"
    elif unit == "hours":
        body = f"PT{value}H"
    elif unit == "days":
        body = f"P{value}D"
    else:
        body = f"P{value}W"
    return f"-{body}" if direction == "before" else body


def parse_offset(offset) -> OffsetParts:
    """把单一单位的时长拆回 (数值, 单位, 方向)，供界面回显。

    无法识别或为零时返回 (0, "hours", "before")。
    """
    fallback = OffsetParts(0, "hours", "before")
    if not isinstance(offset, str):
        return fallback
    match = _SINGLE_UNIT_PATTERN.match(offset.strip())
    if not match:
        return fallback

    sign, days, hours, minutes, _seconds = match.groups()
    direction = "before" if sign == "-" else "after"
    if days and int(days) > 0:
        return OffsetParts(int(days), "days", direction)
    if hours and int(hours) > 0:
        return OffsetParts(int(hours), "hours", direction)
    if minutes and int(minutes) > 0:
        return OffsetParts(int(minutes), "minutes", direction)
    return fallback


def is_sub_day_offset(offset) -> bool:
    """仅含时间部分 (PT...) 的时长视为不足一天"""
    if not isinstance(offset, str):
        return False
    return bool(_SUB_DAY_PATTERN.match(offset)) and not _DAY_OR_LONGER_PATTERN.search(offset)


def format_duration_for_display(duration: str) -> str:
    """取最大的整单位显示，负值带前导 '-'，例如 "-PT2H" -> "-2 hours" """
    ms = parse_duration(duration)
    if ms is None:
        return duration

    abs_ms = abs(ms)
    days = abs_ms // DAY_MS
    hours = abs_ms // HOUR_MS
    minutes = abs_ms // MINUTE_MS

    if days > 0:
        result = f"{days} day{'s' if days > 1 else ''}"
    elif hours > 0:
        result = f"{hours} hour{'s' if hours > 1 else ''}"
    elif minutes > 0:
        result = f"{minutes} minute{'s' if minutes > 1 else ''}"
    else:
        result = "now"

    return f"-{result}" if ms < 0 else result


def format_short_offset(value: int, unit: str, direction: str) -> str:
    if value == 0:
        return "At anchor"
    dir_label = "before" if direction == "before" else "after"
    if unit == "minutes":
        return f"{value} min {dir_label}"
    if unit == "hours":
        return f"1 hour {dir_label}" if value == 1 else f"{value} hours {dir_label}"
    if unit == "days":
        return f"1 day {dir_label}" if value == 1 else f"{value} days {dir_label}"
    return f"{value} {unit} {dir_label}"
