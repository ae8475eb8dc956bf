"""已触发提醒的拉取表

界面层通过 get_fired_reminders 拉取、clear_fired_reminder 消费；每次变更都会发布
FIRED_REMINDERS_CHANGED 事件，供订阅方失效缓存。键为 "<task_path>-<reminder_id>"。
"""

from __future__ import annotations

from typing import Dict, Optional

from taskreminders.datamodel import FiredReminderInfo, dedup_key
from taskreminders.events import E, Bus, bus as default_bus
from taskreminders.logger import logger

__all__ = ["FiredReminderStore"]


class FiredReminderStore:
    def __init__(self, event_bus: Optional[Bus] = None) -> None:
        self._bus = event_bus or default_bus
        self._records: Dict[str, FiredReminderInfo] = {}

    def __len__(self) -> int:
        return len(self._records)

    def _changed(self, task_path: Optional[str] = None) -> None:
        self._bus.emit(E.FIRED_REMINDERS_CHANGED, task_path=task_path)

    def add(self, info: FiredReminderInfo) -> str:
        key = dedup_key(info.task_path, info.reminder_id)
        self._records[key] = info
        logger.trace(f"记录已触发提醒: {key}")
        self._changed(info.task_path)
        return key

    def get_fired_reminders(self) -> Dict[str, FiredReminderInfo]:
        return dict(self._records)

    def clear_fired_reminder(self, key: str) -> bool:
        if self._records.pop(key, None) is None:
            return False
        self._changed()
        return True

    def clear_fired_reminders_for_task(self, task_path: str) -> int:
        keys = [k for k, info in self._records.items() if info.task_path == task_path]
        for key in keys:
            del self._records[key]
        if keys:
            self._changed(task_path)
        return len(keys)

    def clear(self) -> None:
        had_records = bool(self._records)
        self._records.clear()
        if had_records:
            self._changed()
