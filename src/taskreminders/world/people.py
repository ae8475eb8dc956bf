"""个人通知偏好

从人员笔记的 frontmatter 解析偏好 (可用时段、提前量、是否接收通知、覆盖/叠加模式)，
并提供带缓存的 PersonDirectory 作为调度器的偏好来源。
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from taskreminders.datamodel import LeadTime, PersonPreferences
from taskreminders.logger import logger
from taskreminders.world.duration import UNIT_MS, format_duration

__all__ = [
    "DEFAULT_PERSON_PREFERENCES", "DEFAULT_LEAD_TIMES",
    "parse_person_preferences", "lead_time_to_ms", "lead_time_to_duration",
    "PersonDirectory",
]

VALID_UNITS = ("minutes", "hours", "days", "weeks")

# 未声明自定义提前量时界面展示的默认值；不参与虚拟提醒生成
DEFAULT_LEAD_TIMES = [LeadTime(1, "days"), LeadTime(15, "minutes")]

DEFAULT_PERSON_PREFERENCES = PersonPreferences()


def _parse_time_field(value: Any, default: str) -> str:
    if isinstance(value, str):
        parts = value.strip().split(":")
        if len(parts) == 2 and parts[0].isdigit() and parts[1].isdigit():
            hours, minutes = int(parts[0]), int(parts[1])
            if 0 <= hours <= 23 and 0 <= minutes <= 59:
                return f"{hours:02d}:{minutes:02d}"
        return default
    # YAML 会把 09:00 解析成 540 (分钟数)
    if isinstance(value, int) and not isinstance(value, bool) and 0 <= value < 24 * 60:
        return f"{value // 60:02d}:{value % 60:02d}"
    return default


def _parse_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if value == "true":
        return True
    if value == "false":
        return False
    return default


def _parse_lead_times(value: Any) -> List[LeadTime]:
    if not isinstance(value, list):
        return []
    lead_times: List[LeadTime] = []
    for item in value:
        if (
            isinstance(item, Mapping)
            and isinstance(item.get("value"), int)
            and not isinstance(item.get("value"), bool)
            and item.get("unit") in VALID_UNITS
        ):
            lead_times.append(LeadTime(item["value"], item["unit"]))
    return lead_times


def parse_person_preferences(frontmatter: Optional[Mapping[str, Any]]) -> PersonPreferences:
    fm = frontmatter or {}
    defaults = DEFAULT_PERSON_PREFERENCES

    # 兼容旧字段 reminderTime -> availableFrom
    if fm.get("availableFrom") is not None:
        available_from = _parse_time_field(fm.get("availableFrom"), defaults.available_from)
    elif fm.get("reminderTime") is not None:
        available_from = _parse_time_field(fm.get("reminderTime"), defaults.available_from)
    else:
        available_from = defaults.available_from

    return PersonPreferences(
        lead_times=_parse_lead_times(fm.get("reminderLeadTimes")),
        notification_enabled=_parse_bool(fm.get("notificationEnabled"), defaults.notification_enabled),
        available_from=available_from,
        available_until=_parse_time_field(fm.get("availableUntil"), defaults.available_until),
        overrides_global=_parse_bool(fm.get("overrideGlobalReminders"), defaults.overrides_global),
    )


def lead_time_to_ms(lead_time: LeadTime) -> int:
    return lead_time.value * UNIT_MS[lead_time.unit]


def lead_time_to_duration(lead_time: LeadTime) -> str:
    """{1, days} -> "-P1D"; {15, minutes} -> "-PT15M" """
    return format_duration(lead_time.value, lead_time.unit, "before")


class PersonDirectory:
    """人员 id -> 偏好，未知人员返回默认偏好"""

    def __init__(self, frontmatters: Optional[Dict[str, Mapping[str, Any]]] = None) -> None:
        self._frontmatters: Dict[str, Mapping[str, Any]] = dict(frontmatters or {})
        self._cache: Dict[str, PersonPreferences] = {}

    def get_preferences(self, person_id: str) -> PersonPreferences:
        cached = self._cache.get(person_id)
        if cached is not None:
            return cached

        frontmatter = self._frontmatters.get(person_id)
        if frontmatter is None:
            logger.trace(f"未找到人员 {person_id} 的偏好, 使用默认值")
        prefs = parse_person_preferences(frontmatter)
        self._cache[person_id] = prefs
        return prefs

    def set_person(self, person_id: str, frontmatter: Mapping[str, Any]) -> None:
        self._frontmatters[person_id] = dict(frontmatter)
        self.invalidate(person_id)

    def invalidate(self, person_id: str) -> None:
        self._cache.pop(person_id, None)

    def clear_cache(self) -> None:
        self._cache.clear()

    def person_ids(self) -> List[str]:
        return list(self._frontmatters)
