"""系统唤醒恢复

机器休眠期间计时器不会推进，唤醒后两次粗扫的间隔会远大于配置的粗扫间隔。
此时逐个检查显式提醒的 processed 标记：时刻已经到达的标记被移除，随后做一次完整粗扫。
任务或提醒无法重新读取时同样移除标记，宁可重复提醒也不漏报。

虚拟提醒的标记一律保留。它们每轮都会重新生成，到期/逾期类的补发由粗扫的过期分类负责；
若在这里移除，已送达的到期提醒会在每次唤醒后重复触发。
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Set, Tuple

from taskreminders.datamodel import Reminder, Task
from taskreminders.logger import logger

if TYPE_CHECKING:
    from taskreminders.world.reminder import NotificationScheduler

__all__ = ["recover_after_wake", "find_explicit_reminder", "VIRTUAL_PREFIX"]

VIRTUAL_PREFIX = "virtual_"


def find_explicit_reminder(task: Task, reminder_id: str) -> Optional[Reminder]:
    for reminder in task.reminders:
        if reminder.id == reminder_id and not reminder.is_virtual:
            return reminder
    return None


async def recover_after_wake(scheduler: "NotificationScheduler") -> None:
    now = scheduler.clock()
    last = scheduler.get_status()["last_broad_scan_at"]
    logger.info(f"检测到系统唤醒 (距上次粗扫 {(now - last) / 1000 if last else 0:.0f} 秒), 开始恢复")
    scheduler.metrics.record_wake_recovery()

    to_remove: Set[Tuple[str, str]] = set()
    tasks: dict[str, Optional[Task]] = {}
    for key in scheduler.processed_keys:
        task_path, reminder_id = key
        if reminder_id.startswith(VIRTUAL_PREFIX):
            continue
        try:
            if task_path not in tasks:
                tasks[task_path] = await scheduler.task_store.get_task_info(task_path)
        except Exception as e:
            logger.warning(f"唤醒恢复读取任务失败, 移除标记 {task_path} [{reminder_id}]: {e}")
            to_remove.add(key)
            continue

        task = tasks[task_path]
        reminder = find_explicit_reminder(task, reminder_id) if task is not None else None
        if reminder is None:
            to_remove.add(key)
            continue

        notify_at = scheduler.notify_time(task, reminder)
        if notify_at is not None and notify_at <= now:
            to_remove.add(key)

    await scheduler.discard_processed(to_remove)
    logger.info(f"唤醒恢复: 移除 {len(to_remove)} 个 processed 标记")

    await scheduler.broad_scan()
