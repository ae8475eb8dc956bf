"""事件总线模块，定义了事件总线类 Bus 及事件名集合 E

任务存储在任务变更时发布 TASK_UPDATED，调度器订阅它来重新计算该任务的提醒；
分发器在提醒触发后发布 REMINDER_TRIGGERED 与 FIRED_REMINDERS_CHANGED，供界面层拉取。

协程处理器由 pyee 在当前事件循环中以独立 Task 运行，因此 emit 必须在事件循环内调用。
"""

from __future__ import annotations

from typing import Awaitable, Callable, Set

from pyee.asyncio import AsyncIOEventEmitter

from taskreminders.logger import logger

AsyncHandler = Callable[..., Awaitable[None]]


# 事件名集中定义
class E:
    TASK_UPDATED = "task.updated"
    REMINDER_QUEUED = "reminder.queued"
    REMINDER_TRIGGERED = "reminder.triggered"
    FIRED_REMINDERS_CHANGED = "fired_reminders.changed"


# 独占事件：仅允许一个处理器注册
EXCLUSIVE_EVENTS: Set[str] = set()


class Bus(AsyncIOEventEmitter):
    def __init__(self) -> None:
        super().__init__()
        self._exclusive: Set[str] = set()

    def on(self, event: str) -> Callable[[AsyncHandler], AsyncHandler]:
        """注册事件处理器装饰器"""
        def decorator(handler: AsyncHandler) -> AsyncHandler:
            if event in EXCLUSIVE_EVENTS:
                if event in self._exclusive:
                    raise RuntimeError(f"独占事件的唯一处理器已注册: {event}")
                self._exclusive.add(event)

            logger.debug(f"注册事件处理器: {event} -> {getattr(handler, '__name__', handler)}")
            super(Bus, self).on(event, handler)
            return handler

        return decorator

    def off(self, event: str, handler: AsyncHandler) -> None:
        """注销事件处理器，处理器未注册时静默忽略"""
        try:
            self.remove_listener(event, handler)
        except KeyError:
            return
        self._exclusive.discard(event)
        logger.debug(f"注销事件处理器: {event} -> {getattr(handler, '__name__', handler)}")


bus = Bus()

__all__ = ["bus", "Bus", "E"]
