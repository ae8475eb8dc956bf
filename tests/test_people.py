from taskreminders.datamodel import LeadTime, Task
from taskreminders.world.assignee import (
    DeviceRecipientFilter,
    is_assigned_to_user,
    normalize_assignee_path,
    should_notify_for_task,
)
from taskreminders.world.people import (
    PersonDirectory,
    lead_time_to_duration,
    lead_time_to_ms,
    parse_person_preferences,
)


def test_preferences_defaults():
    prefs = parse_person_preferences(None)
    assert prefs.available_from == "09:00"
    assert prefs.available_until == "17:00"
    assert prefs.notification_enabled
    assert prefs.overrides_global
    assert not prefs.has_custom_lead_times


def test_preferences_parsing_variants():
    prefs = parse_person_preferences({
        "reminderTime": "07:30",
        "availableUntil": 1110,
        "notificationEnabled": "false",
        "overrideGlobalReminders": False,
        "reminderLeadTimes": [
            {"value": 2, "unit": "hours"},
            {"value": "3", "unit": "days"},
            {"value": 1, "unit": "fortnights"},
            {"value": 15, "unit": "minutes"},
        ],
    })
    assert prefs.available_from == "07:30"
    assert prefs.available_until == "18:30"
    assert not prefs.notification_enabled
    assert not prefs.overrides_global
    assert prefs.lead_times == [LeadTime(2, "hours"), LeadTime(15, "minutes")]


def test_available_from_wins_over_legacy_field_and_bad_values_fall_back():
    prefs = parse_person_preferences({"availableFrom": "10:00", "reminderTime": "07:30", "availableUntil": "25:00"})
    assert prefs.available_from == "10:00"
    assert prefs.available_until == "17:00"


def test_lead_time_helpers():
    assert lead_time_to_ms(LeadTime(15, "minutes")) == 15 * 60 * 1000
    assert lead_time_to_duration(LeadTime(1, "days")) == "-P1D"
    assert lead_time_to_duration(LeadTime(15, "minutes")) == "-PT15M"


def test_person_directory_caches_and_invalidates():
    directory = PersonDirectory({"People/alice": {"availableFrom": "08:00"}})
    first = directory.get_preferences("People/alice")
    assert first.available_from == "08:00"
    assert directory.get_preferences("People/alice") is first

    directory.set_person("People/alice", {"availableFrom": "11:00"})
    assert directory.get_preferences("People/alice").available_from == "11:00"
    assert directory.get_preferences("People/unknown").available_from == "09:00"


def test_normalize_assignee_path():
    assert normalize_assignee_path("[[People/Alice Smith.md|Alice]]") == "alice smith"
    assert normalize_assignee_path("People/Bob") == "bob"
    assert normalize_assignee_path("  carol  ") == "carol"


def test_assignment_matching_with_groups():
    groups = {"Teams/Platform": ["People/Alice", "People/Dan"]}
    assert is_assigned_to_user(["[[People/Alice]]"], "People/Alice.md")
    assert is_assigned_to_user("[[Teams/Platform]]", "People/Dan", lambda name: groups.get(name.strip("[]")))
    assert not is_assigned_to_user("People/Eve", "People/Alice")


def test_should_notify_for_task():
    assert should_notify_for_task("People/Eve", None, False)
    assert should_notify_for_task(None, "People/Alice", True)
    assert not should_notify_for_task([], "People/Alice", False)
    assert not should_notify_for_task("People/Eve", "People/Alice", True)


def test_device_recipient_filter():
    device = DeviceRecipientFilter(current_user="People/Alice", filter_by_assignment=True, include_unassigned=False)
    mine = Task(path="a", frontmatter={"assignee": "[[People/Alice]]"})
    theirs = Task(path="b", assignee="People/Eve")
    nobody = Task(path="c")

    assert device.is_relevant(mine)
    assert not device.is_relevant(theirs)
    assert not device.is_relevant(nobody)
    assert device.get_relevant_person(mine) == "People/Alice"
    assert device.get_relevant_person(theirs) is None

    unfiltered = DeviceRecipientFilter(current_user="People/Alice")
    assert unfiltered.is_relevant(theirs)
    assert unfiltered.get_relevant_person(theirs) == "People/Alice"
    assert DeviceRecipientFilter().get_relevant_person(mine) is None
