from typing import Optional

from taskreminders.datamodel import Reminder, ReminderType, Task
from taskreminders.logger import logger
from taskreminders.utils import parse_date_to_local, to_ms
from taskreminders.world.anchors import AnchorResolver
from taskreminders.world.duration import parse_duration

__all__ = ["compute_notify_time"]


def compute_notify_time(task: Task, reminder: Reminder, resolver: AnchorResolver) -> Optional[int]:
    """计算提醒的绝对触发时刻 (epoch 毫秒)，无法计算时返回 None"""
    try:
        if reminder.type == ReminderType.ABSOLUTE.value:
            if not reminder.absolute_time:
                return None
            return to_ms(parse_date_to_local(reminder.absolute_time))

        if reminder.type == ReminderType.RELATIVE.value:
            if not reminder.related_to or not reminder.offset:
                return None

            anchor_str = resolver.resolve(task, reminder.related_to)
            if not anchor_str:
                return None

            offset_ms = parse_duration(reminder.offset)
            if offset_ms is None:
                logger.trace(f"无法解析提醒偏移: task={task.path}, reminder={reminder.id}, offset={reminder.offset!r}")
                return None

            return to_ms(parse_date_to_local(anchor_str)) + offset_ms
    except (ValueError, TypeError, OverflowError) as e:
        logger.trace(f"计算提醒时间失败: task={task.path}, reminder={reminder.id}, error={e}")
        return None

    return None
