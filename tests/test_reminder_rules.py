from taskreminders.config.reminder_config import ReminderConfig
from taskreminders.datamodel import (
    GlobalReminderRule,
    LeadTime,
    PersonContext,
    PersonPreferences,
    Reminder,
    Task,
)
from taskreminders.world.anchors import AnchorResolver
from taskreminders.world.reminder_rules import ReminderRuleEngine


def _engine(rules=None):
    config = ReminderConfig() if rules is None else ReminderConfig(rules=rules)
    return config.build_rule_engine()


def test_default_rules_generate_three_virtual_reminders():
    task = Task(path="tasks/a.md", title="Report", due="2025-06-10T09:00:00")
    reminders = _engine().generate(task)

    assert [r.id for r in reminders] == ["virtual_lead-time-1d", "virtual_due-date", "virtual_overdue-daily"]
    assert all(r.is_virtual for r in reminders)
    overdue = reminders[-1]
    assert overdue.semantic_type == "overdue"
    assert overdue.repeat_interval_hours == 24
    assert overdue.source_rule_id == "overdue-daily"


def test_ids_are_stable_across_generations():
    task = Task(path="tasks/a.md", due="2025-06-10")
    engine = _engine()
    assert [r.id for r in engine.generate(task)] == [r.id for r in engine.generate(task)]


def test_completed_task_generates_nothing():
    engine = ReminderRuleEngine(ReminderConfig().rules, AnchorResolver(), completed_statuses=["done", "cancelled"])
    assert engine.generate(Task(path="a", status="done", due="2025-06-10")) == []
    assert engine.generate(Task(path="a", status="Cancelled", due="2025-06-10")) == []


def test_missing_anchor_and_disabled_rule_are_skipped():
    rules = [
        GlobalReminderRule(id="start", semantic_type="start-date", anchor_property="scheduled", offset="PT0S"),
        GlobalReminderRule(id="off", semantic_type="due-date", anchor_property="due", offset="PT0S", enabled=False),
    ]
    assert _engine(rules).generate(Task(path="a", due="2025-06-10")) == []


def test_explicit_reminder_of_same_semantic_type_suppresses_rule():
    task = Task(
        path="a",
        due="2025-06-10",
        reminders=[Reminder(id="mine", related_to="due", offset="-PT2H", semantic_type="lead-time")],
    )
    ids = [r.id for r in _engine().generate(task)]
    assert "virtual_lead-time-1d" not in ids
    assert "virtual_due-date" in ids


def test_explicit_reminder_without_skip_flag_keeps_rule():
    rules = [
        GlobalReminderRule(id="lt", semantic_type="lead-time", anchor_property="due", offset="-P1D",
                           skip_if_explicit_exists=False),
    ]
    task = Task(path="a", due="2025-06-10",
                reminders=[Reminder(id="mine", related_to="due", offset="-PT2H", semantic_type="lead-time")])
    assert [r.id for r in _engine(rules).generate(task)] == ["virtual_lt"]


def test_person_lead_times_override_global_lead_time_rules():
    person = PersonContext("People/alice", PersonPreferences(
        lead_times=[LeadTime(2, "hours"), LeadTime(3, "days")],
        overrides_global=True,
    ))
    reminders = _engine().generate(Task(path="a", due="2025-06-10"), person)
    ids = [r.id for r in reminders]

    assert "virtual_lead-time-1d" not in ids
    assert "virtual_person-lt_due_2hours" in ids
    assert "virtual_person-lt_due_3days" in ids
    by_id = {r.id: r for r in reminders}
    assert by_id["virtual_person-lt_due_2hours"].offset == "-PT2H"
    assert by_id["virtual_person-lt_due_3days"].description == "3 days before due (person)"


def test_person_lead_times_additive_mode_skips_exact_duplicates():
    person = PersonContext("People/bob", PersonPreferences(
        lead_times=[LeadTime(1, "days"), LeadTime(30, "minutes")],
        overrides_global=False,
    ))
    ids = [r.id for r in _engine().generate(Task(path="a", due="2025-06-10"), person)]

    # 全局 -P1D 与个人 1 天重复，只保留个人版本
    assert "virtual_lead-time-1d" not in ids
    assert "virtual_person-lt_due_1days" in ids
    assert "virtual_person-lt_due_30minutes" in ids
    assert "virtual_due-date" in ids


def test_person_without_custom_lead_times_uses_global_rules():
    person = PersonContext("People/carol", PersonPreferences())
    ids = [r.id for r in _engine().generate(Task(path="a", due="2025-06-10"), person)]
    assert "virtual_lead-time-1d" in ids
