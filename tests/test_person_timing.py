from datetime import datetime

from taskreminders.datamodel import PersonContext, PersonPreferences, Reminder
from taskreminders.utils import to_ms
from taskreminders.world.person_timing import adjust_for_person, defer_to_availability


def _ms(*args) -> int:
    return to_ms(datetime(*args))


def _virtual(offset: str, semantic_type: str = "lead-time") -> Reminder:
    return Reminder(id="virtual_x", related_to="due", offset=offset, semantic_type=semantic_type, is_virtual=True)


def _person(**prefs) -> PersonContext:
    return PersonContext("People/alice", PersonPreferences(**prefs))


def test_no_person_leaves_time_unchanged():
    at = _ms(2025, 6, 9, 3, 0)
    assert adjust_for_person(at, None, _virtual("-P1D")) == (at, False)


def test_disabled_person_skips():
    result = adjust_for_person(_ms(2025, 6, 9, 12, 0), _person(notification_enabled=False), _virtual("-P1D"))
    assert result.skip


def test_explicit_reminder_keeps_author_time():
    at = _ms(2025, 6, 9, 3, 0)
    explicit = Reminder(id="r1", related_to="due", offset="-P1D", semantic_type="lead-time")
    assert adjust_for_person(at, _person(available_from="09:00"), explicit) == (at, False)


def test_day_or_longer_lead_time_pinned_to_available_from():
    at = _ms(2025, 6, 9, 15, 0)
    result = adjust_for_person(at, _person(available_from="08:00"), _virtual("-P1D"))
    assert result == (_ms(2025, 6, 9, 8, 0), False)


def test_other_virtual_types_pinned_to_available_from():
    at = _ms(2025, 6, 10, 0, 0)
    result = adjust_for_person(at, _person(available_from="09:30"), _virtual("PT0S", "due-date"))
    assert result.notify_at == _ms(2025, 6, 10, 9, 30)


def test_short_lead_time_is_urgent_and_unchanged():
    at = _ms(2025, 6, 9, 23, 30)
    assert adjust_for_person(at, _person(), _virtual("-PT30M")).notify_at == at
    assert adjust_for_person(at, _person(), _virtual("PT0S")).notify_at == at


def test_sub_day_lead_time_deferred_outside_window():
    person = _person(available_from="09:00", available_until="17:00")
    # 20:00 已过当天时段，顺延到次日 09:00
    assert adjust_for_person(_ms(2025, 6, 9, 20, 0), person, _virtual("-PT2H")).notify_at == _ms(2025, 6, 10, 9, 0)
    # 07:00 尚未进入时段，当天 09:00
    assert adjust_for_person(_ms(2025, 6, 9, 7, 0), person, _virtual("-PT2H")).notify_at == _ms(2025, 6, 9, 9, 0)
    # 时段内不变
    assert adjust_for_person(_ms(2025, 6, 9, 12, 0), person, _virtual("-PT2H")).notify_at == _ms(2025, 6, 9, 12, 0)


def test_window_is_half_open():
    at_until = _ms(2025, 6, 9, 17, 0)
    assert defer_to_availability(at_until, (9, 0), (17, 0)) == _ms(2025, 6, 10, 9, 0)
    at_from = _ms(2025, 6, 9, 9, 0)
    assert defer_to_availability(at_from, (9, 0), (17, 0)) == at_from


def test_wrapping_window_for_night_shift():
    night = ((22, 0), (6, 0))
    assert defer_to_availability(_ms(2025, 6, 9, 23, 0), *night) == _ms(2025, 6, 9, 23, 0)
    assert defer_to_availability(_ms(2025, 6, 9, 3, 0), *night) == _ms(2025, 6, 9, 3, 0)
    assert defer_to_availability(_ms(2025, 6, 9, 12, 0), *night) == _ms(2025, 6, 9, 22, 0)
    assert defer_to_availability(_ms(2025, 6, 9, 6, 0), *night) == _ms(2025, 6, 9, 22, 0)
