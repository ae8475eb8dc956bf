"""按个人可用时段调整虚拟提醒的触发时刻

- 无个人上下文: 原样返回;
- 个人关闭通知: skip=True, 调用方应整条丢弃;
- 显式提醒: 始终保留作者指定的时间;
- lead-time 且偏移不足一天、绝对值 < 1 小时: 视为紧急, 原样返回;
- lead-time 且偏移不足一天、>= 1 小时: 落在 [available_from, available_until) 之外时顺延到下一个 available_from;
- 其余虚拟提醒 (一天及以上的偏移、其他语义类型): 保留日期, 时刻固定为 available_from。
"""

from __future__ import annotations

from datetime import timedelta
from typing import NamedTuple, Optional

from taskreminders.datamodel import PersonContext, Reminder, SemanticType
from taskreminders.logger import logger
from taskreminders.utils import from_ms, parse_hh_mm, to_ms
from taskreminders.world.duration import HOUR_MS, is_sub_day_offset, parse_duration

__all__ = ["TimingAdjustment", "adjust_for_person", "defer_to_availability", "pin_to_available_from"]

_DEFAULT_FROM = (9, 0)
_DEFAULT_UNTIL = (17, 0)


class TimingAdjustment(NamedTuple):
    notify_at: int
    skip: bool


def adjust_for_person(notify_at: int, person: Optional[PersonContext], reminder: Reminder) -> TimingAdjustment:
    if person is None:
        return TimingAdjustment(notify_at, False)

    prefs = person.preferences
    if not prefs.notification_enabled:
        logger.trace(f"{person.person_id} 已关闭通知, 跳过提醒 {reminder.id}")
        return TimingAdjustment(notify_at, True)

    if not reminder.is_virtual:
        return TimingAdjustment(notify_at, False)

    from_time = parse_hh_mm(prefs.available_from, _DEFAULT_FROM)
    until_time = parse_hh_mm(prefs.available_until, _DEFAULT_UNTIL)

    if reminder.semantic_type == SemanticType.LEAD_TIME.value and is_sub_day_offset(reminder.offset):
        offset_ms = abs(parse_duration(reminder.offset) or 0)
        if offset_ms < HOUR_MS:
            return TimingAdjustment(notify_at, False)
        return TimingAdjustment(defer_to_availability(notify_at, from_time, until_time), False)

    adjusted = pin_to_available_from(notify_at, from_time)
    if adjusted != notify_at:
        logger.trace(
            f"个人时段调整: {from_ms(notify_at):%H:%M} -> {from_time[0]:02d}:{from_time[1]:02d} "
            f"(person={person.person_id}, reminder={reminder.id})"
        )
    return TimingAdjustment(adjusted, False)


def pin_to_available_from(notify_at: int, from_time: tuple[int, int]) -> int:
    local = from_ms(notify_at)
    return to_ms(local.replace(hour=from_time[0], minute=from_time[1], second=0, microsecond=0))


def defer_to_availability(notify_at: int, from_time: tuple[int, int], until_time: tuple[int, int]) -> int:
    """时段为半开区间 [from, until)，from > until 时表示跨越午夜 (例如夜班 22:00-06:00)"""
    local = from_ms(notify_at)
    from_minutes = from_time[0] * 60 + from_time[1]
    until_minutes = until_time[0] * 60 + until_time[1]
    current = local.hour * 60 + local.minute

    wraps = from_minutes > until_minutes
    if wraps:
        within = current >= from_minutes or current < until_minutes
    else:
        within = from_minutes <= current < until_minutes
    if within:
        return notify_at

    target = local.replace(hour=from_time[0], minute=from_time[1], second=0, microsecond=0)
    # 跨午夜时段的空档一定在当天 from 之前；普通时段只有早于 from 才能当天补发
    if not wraps and current >= from_minutes:
        target += timedelta(days=1)
    return to_ms(target)
