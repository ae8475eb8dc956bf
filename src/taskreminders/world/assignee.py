"""负责人过滤

判断任务的负责人是否匹配当前设备登记的人员 (支持小组展开)，
DeviceRecipientFilter 把这些规则封装成调度器使用的 is_relevant / get_relevant_person。
"""

from __future__ import annotations

import re
from typing import Callable, List, Optional, Sequence, Union

from taskreminders.datamodel import Task

__all__ = [
    "normalize_assignee_path", "is_assigned_to_user", "should_notify_for_task",
    "DeviceRecipientFilter", "GroupResolver",
]

AssigneeValue = Union[str, Sequence[str], None]
# 小组名 -> 成员列表；非小组时返回 None
GroupResolver = Callable[[str], Optional[List[str]]]

_MD_SUFFIX = re.compile(r"\.md$")


def normalize_assignee_path(path: str) -> str:
    """'[[People/Alice Smith.md|Alice]]' -> 'alice smith'"""
    normalized = path.strip()
    if normalized.startswith("[["):
        normalized = normalized[2:]
    if normalized.endswith("]]"):
        normalized = normalized[:-2]

    pipe_index = normalized.find("|")
    if pipe_index != -1:
        normalized = normalized[:pipe_index]

    normalized = _MD_SUFFIX.sub("", normalized)
    return normalized.split("/")[-1].lower()


def _as_list(value: AssigneeValue) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [v for v in value if isinstance(v, str)]


def is_assigned_to_user(
    assignee_value: AssigneeValue,
    current_user: str,
    group_resolver: Optional[GroupResolver] = None,
) -> bool:
    target = normalize_assignee_path(current_user)
    for assignee in _as_list(assignee_value):
        members = (group_resolver(assignee) if group_resolver else None) or [assignee]
        if any(normalize_assignee_path(member) == target for member in members):
            return True
    return False


def should_notify_for_task(
    assignee_value: AssigneeValue,
    current_user: Optional[str],
    notify_for_unassigned: bool,
    group_resolver: Optional[GroupResolver] = None,
) -> bool:
    # 设备未登记人员时无法过滤，全部放行
    if not current_user:
        return True
    if not _as_list(assignee_value):
        return notify_for_unassigned
    return is_assigned_to_user(assignee_value, current_user, group_resolver)


class DeviceRecipientFilter:
    def __init__(
        self,
        current_user: Optional[str] = None,
        filter_by_assignment: bool = False,
        include_unassigned: bool = True,
        assignee_field: str = "assignee",
        group_resolver: Optional[GroupResolver] = None,
    ) -> None:
        self.current_user = current_user
        self.filter_by_assignment = filter_by_assignment
        self.include_unassigned = include_unassigned
        self.assignee_field = assignee_field
        self.group_resolver = group_resolver

    def assignee_of(self, task: Task) -> AssigneeValue:
        value = (task.frontmatter or {}).get(self.assignee_field)
        if value is None:
            value = task.assignee
        return value

    def is_relevant(self, task: Task) -> bool:
        if not self.filter_by_assignment:
            return True
        return should_notify_for_task(
            self.assignee_of(task), self.current_user, self.include_unassigned, self.group_resolver
        )

    def get_relevant_person(self, task: Task) -> Optional[str]:
        if not self.current_user:
            return None
        if not self.filter_by_assignment:
            return self.current_user

        assignee = self.assignee_of(task)
        if not _as_list(assignee):
            return self.current_user if self.include_unassigned else None
        return self.current_user if is_assigned_to_user(assignee, self.current_user, self.group_resolver) else None
