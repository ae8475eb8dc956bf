"""通知分发器

一条到期提醒会依次投递到三个互相独立的通道：
1. 系统通知 (notification_type 为 system/both 且通知命令可用);
2. 已触发记录 (notification_type 为 in-app/both)，供界面层拉取;
3. Webhook reminder.triggered，后台发送，不阻塞调度。

任一通道失败只记录日志，不影响其他通道，也不影响调度器的去重状态。
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Set

from taskreminders.config.settings import SchedulerSettings
from taskreminders.datamodel import FiredReminderInfo, NotificationQueueItem, ReminderType, Task, dedup_key
from taskreminders.dispatch.fired import FiredReminderStore
from taskreminders.events import E, Bus, bus as default_bus
from taskreminders.logger import logger
from taskreminders.metrics import RuntimeMetrics, runtime_metrics
from taskreminders.utils import ms_to_iso, now_ms
from taskreminders.world.anchors import AnchorResolver
from taskreminders.world.duration import format_duration_for_display

__all__ = ["NotificationDispatcher", "build_message"]


class Notifier(Protocol):
    def permission_granted(self) -> bool: ...

    async def notify(self, title: str, body: str, tag: str,
                     on_click: Optional[Callable[[], None]] = None) -> None: ...


class WebhookSink(Protocol):
    async def trigger(self, event: str, data: Dict[str, Any]) -> None: ...


def build_message(task: Task, item: NotificationQueueItem, resolver: AnchorResolver) -> str:
    reminder = item.reminder
    if reminder.description:
        return reminder.description

    title = task.title or task.path
    if reminder.type == ReminderType.ABSOLUTE.value:
        return f"Reminder: {title}"

    anchor = resolver.display_name(reminder.related_to or "").lower()
    offset = format_duration_for_display(reminder.offset or "PT0S")
    if offset == "now":
        return f"{title} is {anchor} now"
    if offset.startswith("-"):
        return f"{title} is {anchor} in {offset[1:]}"
    return f"{title} was {anchor} {offset} ago"


class NotificationDispatcher:
    def __init__(
        self,
        resolver: AnchorResolver,
        fired_store: Optional[FiredReminderStore] = None,
        notifier: Optional[Notifier] = None,
        webhook: Optional[WebhookSink] = None,
        settings: Optional[SchedulerSettings] = None,
        event_bus: Optional[Bus] = None,
        clock: Callable[[], int] = now_ms,
        metrics: RuntimeMetrics = runtime_metrics,
        on_open_task: Optional[Callable[[str], Any]] = None,
    ) -> None:
        self.resolver = resolver
        self.settings = settings or SchedulerSettings()
        self._bus = event_bus or default_bus
        self.fired_store = fired_store or FiredReminderStore(self._bus)
        self.notifier = notifier
        self.webhook = webhook
        self.clock = clock
        self.metrics = metrics
        self.on_open_task = on_open_task
        self._background: Set[asyncio.Task] = set()

    @property
    def notification_type(self) -> str:
        return self.settings.notification_type

    async def dispatch(self, item: NotificationQueueItem, task: Task) -> str:
        message = build_message(task, item, self.resolver)
        notification_type = self.notification_type
        logger.info(f"触发提醒: {task.path} [{item.reminder.id}] {message}")

        if notification_type in ("system", "both"):
            await self._send_system(item, task, message)

        if notification_type in ("in-app", "both"):
            self._record_fired(item, task, message)

        if self.webhook is not None:
            self._spawn(self._send_webhook(item, task, message, notification_type))

        self.metrics.record_reminder_triggered()
        self._bus.emit(E.REMINDER_TRIGGERED, item=item, task=task, message=message)
        return message

    async def _send_system(self, item: NotificationQueueItem, task: Task, message: str) -> None:
        if self.notifier is None:
            return
        try:
            if not self.notifier.permission_granted():
                logger.debug("系统通知不可用, 跳过系统通知通道")
                return
            on_click = None
            if self.on_open_task is not None:
                on_click = lambda path=task.path: self.on_open_task(path)
            await self.notifier.notify(
                title=f"{self.settings.app_name} Reminder",
                body=message,
                tag=f"{self.settings.namespace}-{item.task_path}-{item.reminder.id}",
                on_click=on_click,
            )
        except Exception as e:
            self.metrics.record_channel_error("system")
            logger.warning(f"系统通知发送失败: {item.task_path} [{item.reminder.id}]: {e}")

    def _record_fired(self, item: NotificationQueueItem, task: Task, message: str) -> None:
        try:
            self.fired_store.add(FiredReminderInfo(
                task_path=item.task_path,
                message=message,
                fired_at=self.clock(),
                reminder_type=item.reminder.semantic_type or "custom",
                reminder_id=item.reminder.id,
                task=task,
            ))
        except Exception:
            self.metrics.record_channel_error("in-app")
            logger.exception(f"写入已触发提醒失败: {dedup_key(item.task_path, item.reminder.id)}")

    async def _send_webhook(self, item: NotificationQueueItem, task: Task, message: str,
                            notification_type: str) -> None:
        data = {
            "task": task.to_dict(),
            "reminder": item.reminder.to_dict(),
            "notificationTime": ms_to_iso(item.notify_at),
            "message": message,
            "notificationType": notification_type,
        }
        try:
            await self.webhook.trigger(E.REMINDER_TRIGGERED, data)
        except Exception as e:
            self.metrics.record_channel_error("webhook")
            logger.warning(f"Webhook 推送失败: {item.task_path} [{item.reminder.id}]: {e}")

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> None:
        """等待所有后台推送完成"""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        for resource in (self.notifier, self.webhook):
            close = getattr(resource, "aclose", None)
            if close is not None:
                await close()
