"""
提醒调度器

- 粗扫 (broad scan, 默认每 300 秒): 重算全部任务的触发时刻，只保留落在 [now, now + 窗口) 内的提醒，按时间排序;
- 快检 (quick check, 默认每 30 秒): 从队首弹出所有到期的提醒并分发;
- 任务变更: 订阅 task.updated，只重算发生变化的那个任务;
- 系统唤醒: 两次粗扫间隔明显超出预期时，先做唤醒恢复再粗扫。

注意: 所有时刻均为 epoch 毫秒；processed / session_fired 中的键为 (task_path, reminder_id) 元组。
"""

from __future__ import annotations

import asyncio
import bisect
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, FrozenSet, List, Optional, Set, Tuple

from taskreminders.config.settings import SchedulerSettings
from taskreminders.datamodel import (
    FiredReminderInfo,
    NotificationQueueItem,
    PersonContext,
    Reminder,
    SemanticType,
    Task,
)
from taskreminders.dispatch.dispatcher import NotificationDispatcher
from taskreminders.dispatch.fired import FiredReminderStore
from taskreminders.events import E, Bus, bus as default_bus
from taskreminders.logger import logger
from taskreminders.metrics import RuntimeMetrics, runtime_metrics
from taskreminders.storage.base import PersonPreferenceSource, RecipientFilter, TaskStore
from taskreminders.utils import from_ms, now_ms
from taskreminders.world.anchors import AnchorResolver
from taskreminders.world.duration import HOUR_MS
from taskreminders.world.notify_time import compute_notify_time
from taskreminders.world.person_timing import adjust_for_person
from taskreminders.world.reminder_rules import ReminderRuleEngine
from taskreminders.world.wake import recover_after_wake

__all__ = ["NotificationScheduler", "ScanStats", "repeat_interval_ms"]

Key = Tuple[str, str]

# 任一字段变化都视为“相关变更”，会清空该任务的去重状态
_RELEVANT_FIELDS = ("status", "due", "scheduled")


def repeat_interval_ms(reminder: Reminder) -> int:
    hours = reminder.repeat_interval_hours or 0
    return max(int(hours * HOUR_MS), HOUR_MS)


@dataclass
class ScanStats:
    scanned: int = 0
    skipped_by_assignee: int = 0
    skipped_disabled: int = 0
    person_lead_time_tasks: int = 0
    queued: int = 0


class NotificationScheduler:
    def __init__(
        self,
        task_store: TaskStore,
        rule_engine: ReminderRuleEngine,
        resolver: AnchorResolver,
        dispatcher: NotificationDispatcher,
        recipient_filter: Optional[RecipientFilter] = None,
        person_source: Optional[PersonPreferenceSource] = None,
        settings: Optional[SchedulerSettings] = None,
        clock: Callable[[], int] = now_ms,
        event_bus: Optional[Bus] = None,
        metrics: RuntimeMetrics = runtime_metrics,
    ) -> None:
        self.task_store = task_store
        self.rule_engine = rule_engine
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.recipient_filter = recipient_filter
        self.person_source = person_source
        self.settings = settings or SchedulerSettings()
        self.clock = clock
        self.metrics = metrics
        self._bus = event_bus or default_bus

        self._queue: List[NotificationQueueItem] = []
        self._processed: Set[Key] = set()
        self._session_fired: Set[Key] = set()

        self._state_lock = asyncio.Lock()
        self._broad_running = False
        self._quick_running = False
        self._last_broad_scan_at: Optional[int] = None
        self._last_quick_check_at: Optional[int] = None
        self._loops: List[asyncio.Task] = []
        self._subscribed = False

    # ----------------- 状态查询 ----------------
    @property
    def fired_store(self) -> FiredReminderStore:
        return self.dispatcher.fired_store

    @property
    def queue(self) -> List[NotificationQueueItem]:
        return list(self._queue)

    @property
    def processed_keys(self) -> FrozenSet[Key]:
        return frozenset(self._processed)

    @property
    def session_fired_keys(self) -> FrozenSet[Key]:
        return frozenset(self._session_fired)

    @property
    def running(self) -> bool:
        return bool(self._loops) and not all(t.done() for t in self._loops)

    def get_fired_reminders(self) -> Dict[str, FiredReminderInfo]:
        return self.fired_store.get_fired_reminders()

    def clear_fired_reminder(self, key: str) -> bool:
        return self.fired_store.clear_fired_reminder(key)

    def clear_fired_reminders_for_task(self, task_path: str) -> int:
        return self.fired_store.clear_fired_reminders_for_task(task_path)

    def get_status(self) -> dict[str, object]:
        return {
            "running": self.running,
            "queue_size": len(self._queue),
            "processed_count": len(self._processed),
            "session_fired_count": len(self._session_fired),
            "fired_count": len(self.fired_store),
            "next_notify_at": self._queue[0].notify_at if self._queue else None,
            "last_broad_scan_at": self._last_broad_scan_at,
            "last_quick_check_at": self._last_quick_check_at,
            "notification_type": self.settings.notification_type,
        }

    async def discard_processed(self, keys: Set[Key]) -> None:
        """唤醒恢复使用：移除指定的 processed 标记"""
        async with self._state_lock:
            self._processed.difference_update(keys)

    async def clear_processed_reminders_for_task(self, task_path: str) -> None:
        async with self._state_lock:
            self._drop_processed_for_task(task_path)
        logger.info(f"已清除任务的 processed 标记: {task_path}")

    def _drop_processed_for_task(self, task_path: str) -> None:
        self._processed = {k for k in self._processed if k[0] != task_path}

    def _clear_session_fired_for_task(self, task_path: str) -> None:
        self._session_fired = {k for k in self._session_fired if k[0] != task_path}

    def _purge_queue_for_task(self, task_path: str) -> None:
        self._queue = [item for item in self._queue if item.task_path != task_path]

    # ----------------- 触发时刻计算 ----------------
    def person_context(self, task: Task) -> Optional[PersonContext]:
        if self.recipient_filter is None or self.person_source is None:
            return None
        person_id = self.recipient_filter.get_relevant_person(task)
        if not person_id:
            return None
        return PersonContext(person_id, self.person_source.get_preferences(person_id))

    def virtual_reminders(self, task: Task) -> List[Reminder]:
        return self.rule_engine.generate(task, self.person_context(task))

    def notify_time(self, task: Task, reminder: Reminder) -> Optional[int]:
        return compute_notify_time(task, reminder, self.resolver)

    def _classify_past(self, reminder: Reminder, notify_at: int, now: int) -> Optional[int]:
        """虚拟提醒的时刻已过: 一次性的丢弃，逾期的按间隔推进，到期的尽快补发"""
        semantic = reminder.semantic_type
        if semantic == SemanticType.OVERDUE.value and reminder.repeat_interval_hours:
            interval = repeat_interval_ms(reminder)
            steps = (now - notify_at) // interval + 1
            return notify_at + steps * interval
        if semantic == SemanticType.DUE_DATE.value:
            return now + 1000
        return None

    def _compute_task_items(self, task: Task, now: int, stats: Optional[ScanStats] = None) -> List[NotificationQueueItem]:
        if self.rule_engine.is_completed(task.status):
            return []

        person = self.person_context(task)
        if person is not None and not person.preferences.notification_enabled:
            if stats is not None:
                stats.skipped_disabled += 1
            logger.trace(f"{person.person_id} 已关闭通知, 跳过任务 {task.path}")
            return []

        if stats is not None and person is not None and person.preferences.has_custom_lead_times:
            stats.person_lead_time_tasks += 1

        window_end = now + self.settings.queue_window_ms
        items: List[NotificationQueueItem] = []

        def consider(reminder: Reminder, notify_at: int) -> None:
            if now <= notify_at < window_end:
                items.append(NotificationQueueItem(task.path, reminder, notify_at))

        for reminder in task.reminders:
            key = (task.path, reminder.id)
            if key in self._processed or key in self._session_fired:
                continue
            notify_at = self.notify_time(task, reminder)
            if notify_at is None:
                continue
            consider(reminder, notify_at)

        for reminder in self.rule_engine.generate(task, person):
            key = (task.path, reminder.id)
            if key in self._processed or key in self._session_fired:
                continue
            notify_at = self.notify_time(task, reminder)
            if notify_at is None:
                continue

            adjustment = adjust_for_person(notify_at, person, reminder)
            if adjustment.skip:
                continue
            notify_at = adjustment.notify_at

            if notify_at < now:
                advanced = self._classify_past(reminder, notify_at, now)
                if advanced is None:
                    logger.trace(f"错过的一次性提醒已丢弃: {task.path} [{reminder.id}]")
                    continue
                notify_at = advanced
            consider(reminder, notify_at)

        return items

    def _insert_sorted(self, item: NotificationQueueItem) -> None:
        bisect.insort_right(self._queue, item, key=lambda i: i.notify_at)

    # ----------------- 粗扫 ----------------
    async def broad_scan(self) -> None:
        if self._broad_running:
            logger.debug("上一轮粗扫尚未结束, 跳过本轮")
            return
        self._broad_running = True
        started = time.perf_counter()
        try:
            async with self._state_lock:
                stats = await self._build_queue()
        finally:
            self._broad_running = False

        latency_ms = (time.perf_counter() - started) * 1000
        self.metrics.record_broad_scan(
            latency_ms,
            scanned=stats.scanned,
            skipped_by_assignee=stats.skipped_by_assignee,
            skipped_disabled=stats.skipped_disabled,
            person_lead_time_tasks=stats.person_lead_time_tasks,
            queued=stats.queued,
        )
        logger.info(
            f"粗扫完成: 扫描 {stats.scanned} 个任务, 负责人过滤 {stats.skipped_by_assignee}, "
            f"关闭通知 {stats.skipped_disabled}, 个人提前量 {stats.person_lead_time_tasks}, "
            f"入队 {stats.queued}"
        )

    async def _build_queue(self) -> ScanStats:
        stats = ScanStats()
        now = self.clock()
        # 读取失败也记为一次粗扫，避免被误判为系统唤醒
        self._last_broad_scan_at = now

        try:
            tasks = await self.task_store.get_all_tasks()
        except Exception:
            logger.exception("粗扫读取任务失败, 保留现有队列")
            return stats

        self._session_fired.clear()

        new_queue: List[NotificationQueueItem] = []
        for task in tasks:
            stats.scanned += 1
            try:
                if self.recipient_filter is not None and not self.recipient_filter.is_relevant(task):
                    stats.skipped_by_assignee += 1
                    continue
                new_queue.extend(self._compute_task_items(task, now, stats))
            except Exception:
                logger.exception(f"粗扫处理任务失败, 已跳过: {task.path}")

        new_queue.sort(key=lambda i: i.notify_at)
        self._queue = new_queue
        stats.queued = len(new_queue)

        for item in new_queue:
            logger.debug(f"提醒入队: {item.task_path} [{item.reminder.id}] @ {from_ms(item.notify_at):%Y-%m-%d %H:%M:%S}")
            self._bus.emit(E.REMINDER_QUEUED, item=item)
        return stats

    # ----------------- 快检 ----------------
    async def quick_check(self) -> None:
        if self._quick_running:
            logger.debug("上一轮快检尚未结束, 跳过本轮")
            return
        self._quick_running = True
        try:
            async with self._state_lock:
                await self._fire_due()
        finally:
            self._quick_running = False
        self.metrics.record_quick_check()

    async def _fire_due(self) -> None:
        now = self.clock()
        self._last_quick_check_at = now

        due: List[NotificationQueueItem] = []
        while self._queue and self._queue[0].notify_at <= now:
            due.append(self._queue.pop(0))

        for item in due:
            await self._trigger(item)

            key = item.key
            semantic = item.reminder.semantic_type
            if semantic == SemanticType.DUE_DATE.value:
                # 每个会话只触发一次，直到任务发生相关变更
                self._processed.add(key)
            elif semantic == SemanticType.OVERDUE.value and item.reminder.repeat_interval_hours:
                self._session_fired.add(key)
                next_item = NotificationQueueItem(item.task_path, item.reminder, item.notify_at + repeat_interval_ms(item.reminder))
                self._insert_sorted(next_item)
                logger.debug(
                    f"逾期提醒已重新入队: {item.task_path} [{item.reminder.id}] "
                    f"@ {from_ms(next_item.notify_at):%Y-%m-%d %H:%M:%S}"
                )
            else:
                self._processed.add(key)

    async def _trigger(self, item: NotificationQueueItem) -> None:
        try:
            task = await self.task_store.get_task_info(item.task_path)
        except Exception:
            logger.exception(f"读取任务失败, 提醒未发送: {item.task_path}")
            return
        if task is None:
            logger.debug(f"任务已不存在, 提醒未发送: {item.task_path} [{item.reminder.id}]")
            return
        try:
            await self.dispatcher.dispatch(item, task)
        except Exception:
            logger.exception(f"分发提醒失败: {item.task_path} [{item.reminder.id}]")

    # ----------------- 任务变更 ----------------
    @staticmethod
    def _has_relevant_change(previous: Optional[Task], updated: Task) -> bool:
        if previous is None:
            return True
        for name in _RELEVANT_FIELDS:
            if getattr(previous, name) != getattr(updated, name):
                return True
        return [r.to_dict() for r in previous.reminders] != [r.to_dict() for r in updated.reminders]

    async def handle_task_update(self, path: str, previous_task: Optional[Task], updated_task: Optional[Task]) -> None:
        async with self._state_lock:
            self._apply_task_update(path, previous_task, updated_task)

    def _apply_task_update(self, path: str, previous_task: Optional[Task], updated_task: Optional[Task]) -> None:
        self._purge_queue_for_task(path)
        self.fired_store.clear_fired_reminders_for_task(path)

        if updated_task is None:
            self._drop_processed_for_task(path)
            self._clear_session_fired_for_task(path)
            logger.debug(f"任务已删除, 清除全部提醒状态: {path}")
            return

        if self._has_relevant_change(previous_task, updated_task):
            self._drop_processed_for_task(path)
            self._clear_session_fired_for_task(path)

        if self.rule_engine.is_completed(updated_task.status):
            for rule in self.rule_engine.rules:
                self._processed.add((path, f"virtual_{rule.id}"))
            logger.debug(f"任务已完成, 屏蔽全部虚拟提醒: {path}")
            return

        if self.recipient_filter is not None and not self.recipient_filter.is_relevant(updated_task):
            return

        now = self.clock()
        items = self._compute_task_items(updated_task, now)
        for item in items:
            self._insert_sorted(item)
            self._bus.emit(E.REMINDER_QUEUED, item=item)
        if items:
            logger.debug(f"任务变更后重新入队 {len(items)} 条提醒: {path}")

    async def _on_task_updated(self, path: str = "", previous_task: Optional[Task] = None,
                               updated_task: Optional[Task] = None, **_) -> None:
        try:
            await self.handle_task_update(path, previous_task, updated_task)
        except Exception:
            logger.exception(f"处理任务变更失败: {path}")

    # ----------------- 手动操作 ----------------
    async def refresh_reminders(self) -> None:
        logger.info("手动刷新提醒队列")
        await self.broad_scan()

    # ----------------- 周期任务 ----------------
    def _gap_detected(self) -> bool:
        if self._last_broad_scan_at is None:
            return False
        return self.clock() - self._last_broad_scan_at > self.settings.wake_gap_threshold_ms

    async def broad_tick(self) -> None:
        if self._gap_detected():
            await recover_after_wake(self)
        else:
            await self.broad_scan()

    async def quick_tick(self) -> None:
        # 唤醒恢复只在粗扫节拍中进行；快检只记录间隔异常，照常处理当前队列
        last = self._last_quick_check_at
        if last is not None:
            gap = self.clock() - last
            if gap > (self.settings.quick_check_interval_seconds + self.settings.wake_gap_tolerance_seconds) * 1000:
                logger.info(f"快检间隔异常 ({gap / 1000:.0f} 秒), 可能发生过系统休眠")
        await self.quick_check()

    async def _periodic(self, name: str, interval_seconds: float, tick: Callable[[], Awaitable[None]]) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"{name} 执行失败")

    async def start(self) -> None:
        if self._loops:
            return
        if not self._subscribed:
            self._bus.on(E.TASK_UPDATED)(self._on_task_updated)
            self._subscribed = True

        await self.broad_scan()
        self._loops = [
            asyncio.create_task(self._periodic("粗扫", self.settings.broad_scan_interval_seconds, self.broad_tick)),
            asyncio.create_task(self._periodic("快检", self.settings.quick_check_interval_seconds, self.quick_tick)),
        ]
        logger.info("Reminder 调度器已启动")

    async def stop(self) -> None:
        for loop in self._loops:
            loop.cancel()
        if self._loops:
            await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops = []

        if self._subscribed:
            self._bus.off(E.TASK_UPDATED, self._on_task_updated)
            self._subscribed = False

        self._queue.clear()
        self._processed.clear()
        self._session_fired.clear()
        self.fired_store.clear()
        self._last_broad_scan_at = None
        self._last_quick_check_at = None
        logger.info("Reminder 调度器已停止")

    async def run(self, shutdown_event: asyncio.Event) -> None:
        logger.info("Reminder 主循环已启动")
        await self.start()
        try:
            await shutdown_event.wait()
        finally:
            await self.stop()
        logger.info("Reminder 主循环已关闭")
