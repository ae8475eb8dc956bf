"""全局提醒规则引擎

根据启用的全局规则 (以及可选的个人提前量偏好) 为任务生成“虚拟提醒”。
虚拟提醒每轮重新计算、从不写回任务；其 id 由规则 id 确定性派生，保证跨轮次去重键稳定。

个人提前量的两种模式:
- 覆盖 (overrides_global=True): 个人提前量替换全局 lead-time 规则;
- 叠加 (overrides_global=False): 两者并存，但与个人提前量 (锚点, 偏移) 完全相同的全局规则会被跳过。
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Set, Tuple

from taskreminders.datamodel import (
    GlobalReminderRule,
    PersonContext,
    Reminder,
    ReminderType,
    SemanticType,
    Task,
)
from taskreminders.logger import logger
from taskreminders.world.anchors import AnchorResolver
from taskreminders.world.duration import format_duration

__all__ = ["ReminderRuleEngine", "PERSON_LEAD_TIME_PREFIX", "person_lead_time_rule_id"]

PERSON_LEAD_TIME_PREFIX = "person-lt_"
LEAD_TIME = SemanticType.LEAD_TIME.value


def person_lead_time_rule_id(anchor: str, value: int, unit: str) -> str:
    return f"{PERSON_LEAD_TIME_PREFIX}{anchor}_{value}{unit}"


class ReminderRuleEngine:
    def __init__(
        self,
        rules: Iterable[GlobalReminderRule],
        resolver: AnchorResolver,
        completed_statuses: Iterable[str] = ("done",),
    ) -> None:
        self.rules: List[GlobalReminderRule] = list(rules)
        self.resolver = resolver
        self.completed_statuses: Set[str] = {s.lower() for s in completed_statuses}

    def is_completed(self, status: Optional[str]) -> bool:
        return bool(status) and status.lower() in self.completed_statuses

    def generate(self, task: Task, person: Optional[PersonContext] = None) -> List[Reminder]:
        if self.is_completed(task.status):
            return []
        if not self.rules:
            return []

        has_person_lead_times = person is not None and person.preferences.has_custom_lead_times
        override_mode = person.preferences.overrides_global if person is not None else True

        person_reminders = self._person_lead_time_reminders(task, person) if has_person_lead_times else []

        person_pairs: Set[Tuple[str, str]] = set()
        if not override_mode:
            person_pairs = {(r.related_to, r.offset) for r in person_reminders}

        reminders: List[Reminder] = []
        skipped: List[str] = []

        for rule in self.rules:
            if not rule.enabled:
                continue

            if has_person_lead_times and rule.semantic_type == LEAD_TIME:
                if override_mode:
                    skipped.append(f"{rule.id}:person-override")
                    continue
                if (rule.anchor_property, rule.offset) in person_pairs:
                    skipped.append(f"{rule.id}:person-duplicate")
                    continue

            if not self.resolver.resolve(task, rule.anchor_property):
                skipped.append(f"{rule.id}:no-anchor")
                continue

            if rule.skip_if_explicit_exists and self._has_explicit(task, rule.semantic_type):
                skipped.append(f"{rule.id}:explicit-exists")
                continue

            reminders.append(Reminder(
                id=f"virtual_{rule.id}",
                type=ReminderType.RELATIVE.value,
                related_to=rule.anchor_property,
                offset=rule.offset,
                description=rule.description,
                semantic_type=rule.semantic_type,
                is_virtual=True,
                source_rule_id=rule.id,
                repeat_interval_hours=rule.repeat_interval_hours or None,
            ))

        reminders.extend(person_reminders)

        if reminders or skipped:
            logger.trace(
                f"虚拟提醒 {task.path}: "
                f"generated=[{', '.join(r.source_rule_id for r in reminders)}], "
                f"skipped=[{', '.join(skipped)}]"
            )
        return reminders

    def _person_lead_time_reminders(self, task: Task, person: PersonContext) -> List[Reminder]:
        if self._has_explicit(task, LEAD_TIME):
            return []

        anchors: List[str] = []
        for rule in self.rules:
            if rule.enabled and rule.semantic_type == LEAD_TIME and rule.anchor_property not in anchors:
                anchors.append(rule.anchor_property)

        reminders: List[Reminder] = []
        for anchor in anchors:
            if not self.resolver.resolve(task, anchor):
                continue
            for lead_time in person.preferences.lead_times:
                rule_id = person_lead_time_rule_id(anchor, lead_time.value, lead_time.unit)
                reminders.append(Reminder(
                    id=f"virtual_{rule_id}",
                    type=ReminderType.RELATIVE.value,
                    related_to=anchor,
                    offset=format_duration(lead_time.value, lead_time.unit, "before"),
                    description=f"{lead_time.value} {lead_time.unit} before {anchor} (person)",
                    semantic_type=LEAD_TIME,
                    is_virtual=True,
                    source_rule_id=rule_id,
                ))

        if reminders:
            mode = "replacing" if person.preferences.overrides_global else "adding to"
            logger.debug(
                f"{person.person_id} 的个人提前量: 生成 {len(reminders)} 条提醒 ({mode} global lead-time rules)"
            )
        return reminders

    @staticmethod
    def _has_explicit(task: Task, semantic_type: Optional[str]) -> bool:
        return any(r.semantic_type == semantic_type and not r.is_virtual for r in task.reminders)
