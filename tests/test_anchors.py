from datetime import date, datetime

from taskreminders.datamodel import Reminder, Task
from taskreminders.utils import to_ms
from taskreminders.world.anchors import AnchorResolver, UserField
from taskreminders.world.notify_time import compute_notify_time


def test_resolve_built_in_and_custom_properties():
    resolver = AnchorResolver()
    task = Task(
        path="tasks/a.md",
        due="2025-06-10T09:00:00",
        scheduled="2025-06-08",
        custom_properties={"reviewDate": "2025-07-01"},
    )
    assert resolver.resolve(task, "due") == "2025-06-10T09:00:00"
    assert resolver.resolve(task, "scheduled") == "2025-06-08"
    assert resolver.resolve(task, "reviewDate") == "2025-07-01"
    assert resolver.resolve(task, "dateCreated") is None
    assert resolver.resolve(task, "") is None


def test_resolve_falls_back_to_frontmatter_alias():
    resolver = AnchorResolver(field_mapping={"reviewDate": "review_on"})
    task = Task(path="tasks/b.md", frontmatter={"review_on": date(2025, 7, 1), "notes": "not a date"})
    assert resolver.resolve(task, "reviewDate") == "2025-07-01"
    assert resolver.resolve(task, "notes") is None


def test_display_names():
    resolver = AnchorResolver(user_fields=[UserField("reviewDate", "Review date")])
    assert resolver.display_name("due") == "Due date"
    assert resolver.display_name("reviewDate") == "Review date"
    assert resolver.display_name("unknown") == "unknown"


def test_available_anchors_lists_core_settings_and_discovered_fields():
    resolver = AnchorResolver(user_fields=[UserField("reviewDate"), UserField("owner", type="text")])
    task = Task(path="tasks/c.md", due="2025-06-10", frontmatter={"launchDate": "2025-08-01", "title": "x"})

    anchors = {a.key: a for a in resolver.available_anchors(task)}
    assert anchors["due"].origin == "core"
    assert anchors["due"].current_value == "2025-06-10"
    assert anchors["reviewDate"].origin == "settings"
    assert anchors["reviewDate"].display_name == "Review date"
    assert anchors["launchDate"].origin == "discovered"
    assert "owner" not in anchors
    assert "title" not in anchors


def test_relative_reminder_one_day_before_due():
    resolver = AnchorResolver()
    task = Task(path="tasks/a.md", due="2025-06-10T09:00:00")
    reminder = Reminder(id="r1", type="relative", related_to="due", offset="-P1D")
    assert compute_notify_time(task, reminder, resolver) == to_ms(datetime(2025, 6, 9, 9, 0))


def test_date_only_anchor_is_local_midnight():
    resolver = AnchorResolver()
    task = Task(path="tasks/a.md", due="2025-06-10")
    reminder = Reminder(id="r1", type="relative", related_to="due", offset="-PT2H")
    assert compute_notify_time(task, reminder, resolver) == to_ms(datetime(2025, 6, 9, 22, 0))


def test_absolute_reminder():
    resolver = AnchorResolver()
    task = Task(path="tasks/a.md")
    reminder = Reminder(id="r1", type="absolute", absolute_time="2025-06-10T14:30:00")
    assert compute_notify_time(task, reminder, resolver) == to_ms(datetime(2025, 6, 10, 14, 30))


def test_unresolvable_reminders_yield_none():
    resolver = AnchorResolver()
    task = Task(path="tasks/a.md", due="not a date")
    assert compute_notify_time(task, Reminder(id="a", type="relative", related_to="scheduled", offset="PT0S"), resolver) is None
    assert compute_notify_time(task, Reminder(id="b", type="relative", related_to="due", offset="PT0S"), resolver) is None
    assert compute_notify_time(Task(path="x", due="2025-06-10"), Reminder(id="c", type="relative", related_to="due", offset="bogus"), resolver) is None
    assert compute_notify_time(task, Reminder(id="d", type="absolute"), resolver) is None
    assert compute_notify_time(task, Reminder(id="e", type="absolute", absolute_time="yesterday"), resolver) is None
