from __future__ import annotations

from types import SimpleNamespace
from typing import Dict, Iterable, Optional

import pytest

from taskreminders.config.reminder_config import ReminderConfig
from taskreminders.config.settings import SchedulerSettings
from taskreminders.datamodel import Task
from taskreminders.dispatch.dispatcher import NotificationDispatcher
from taskreminders.dispatch.fired import FiredReminderStore
from taskreminders.errors import DispatchError
from taskreminders.events import Bus
from taskreminders.metrics import RuntimeMetrics
from taskreminders.world.people import PersonDirectory
from taskreminders.world.reminder import NotificationScheduler


class FrozenClock:
    def __init__(self, start: int) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms

    def set(self, ms: int) -> None:
        self.now = ms


class FakeTaskStore:
    def __init__(self, tasks: Iterable[Task] = ()) -> None:
        self.tasks: Dict[str, Task] = {t.path: t for t in tasks}
        self.fail_paths: set[str] = set()

    def put(self, task: Task) -> None:
        self.tasks[task.path] = task

    async def get_all_tasks(self):
        return list(self.tasks.values())

    async def get_task_info(self, path: str):
        if path in self.fail_paths:
            raise RuntimeError(f"store unavailable for {path}")
        return self.tasks.get(path)


class FakeNotifier:
    def __init__(self, granted: bool = True, fail: bool = False) -> None:
        self.granted = granted
        self.fail = fail
        self.sent: list[dict] = []

    def permission_granted(self) -> bool:
        return self.granted

    async def notify(self, title, body, tag, on_click=None) -> None:
        if self.fail:
            raise DispatchError("system", "notify-send missing")
        self.sent.append({"title": title, "body": body, "tag": tag, "on_click": on_click})


class FakeWebhook:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[str, dict]] = []

    async def trigger(self, event, data) -> None:
        self.calls.append((event, data))
        if self.fail:
            raise DispatchError("webhook", "connection refused")


class StaticRecipientFilter:
    def __init__(self, person: Optional[str] = None, relevant: bool = True) -> None:
        self.person = person
        self.relevant = relevant

    def is_relevant(self, task: Task) -> bool:
        return self.relevant

    def get_relevant_person(self, task: Task) -> Optional[str]:
        return self.person


@pytest.fixture
def make_env():
    """组装一个使用假协作者和冻结时钟的调度器"""

    def factory(
        tasks: Iterable[Task] = (),
        now: int = 0,
        config: Optional[ReminderConfig] = None,
        person: Optional[str] = None,
        people: Optional[dict] = None,
        notification_type: str = "both",
        notifier: Optional[FakeNotifier] = None,
        webhook: Optional[FakeWebhook] = None,
        relevant: bool = True,
    ) -> SimpleNamespace:
        config = config or ReminderConfig()
        clock = FrozenClock(now)
        bus = Bus()
        metrics = RuntimeMetrics()
        settings = SchedulerSettings(
            broad_scan_interval_seconds=300,
            quick_check_interval_seconds=30,
            queue_window_seconds=300,
            wake_gap_tolerance_seconds=60,
            notification_type=notification_type,
            namespace="taskreminders",
            app_name="TaskReminders",
        )
        resolver = config.build_resolver()
        store = FakeTaskStore(tasks)
        notifier = notifier or FakeNotifier()
        webhook = webhook or FakeWebhook()
        dispatcher = NotificationDispatcher(
            resolver=resolver,
            fired_store=FiredReminderStore(bus),
            notifier=notifier,
            webhook=webhook,
            settings=settings,
            event_bus=bus,
            clock=clock,
            metrics=metrics,
        )
        scheduler = NotificationScheduler(
            task_store=store,
            rule_engine=config.build_rule_engine(resolver),
            resolver=resolver,
            dispatcher=dispatcher,
            recipient_filter=StaticRecipientFilter(person, relevant),
            person_source=PersonDirectory(people or {}),
            settings=settings,
            clock=clock,
            event_bus=bus,
            metrics=metrics,
        )
        return SimpleNamespace(
            scheduler=scheduler, clock=clock, store=store, notifier=notifier,
            webhook=webhook, dispatcher=dispatcher, bus=bus, metrics=metrics,
        )

    return factory
