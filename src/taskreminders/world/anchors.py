"""日期锚点解析

锚点是任务上的一个具名日期字段 (内置或自定义)，相对提醒以它为基准计算触发时间。
解析顺序:
1. 内置字段 (due / scheduled / dateCreated / dateModified / completedDate)，直接读任务属性;
2. 任务的 custom_properties;
3. 原始 frontmatter: 先按字面 key，再按配置中给该字段起的 frontmatter 别名。
找不到返回 None，调用方应视为“本轮暂不可计算”，而不是错误。
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from taskreminders.datamodel import Task
from taskreminders.utils import normalize_date_value

__all__ = ["BUILT_IN_DATE_FIELDS", "DateAnchor", "UserField", "AnchorResolver"]


@dataclass(frozen=True)
class _BuiltInField:
    key: str
    display_name: str
    attr: str


BUILT_IN_DATE_FIELDS: List[_BuiltInField] = [
    _BuiltInField("due", "Due date", "due"),
    _BuiltInField("scheduled", "Scheduled date", "scheduled"),
    _BuiltInField("dateCreated", "Date created", "date_created"),
    _BuiltInField("dateModified", "Date modified", "date_modified"),
    _BuiltInField("completedDate", "Completed date", "completed_date"),
]
_BUILT_IN_BY_KEY = {f.key: f for f in BUILT_IN_DATE_FIELDS}
_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")


@dataclass(frozen=True)
class UserField:
    key: str
    display_name: str = ""
    type: str = "date"


@dataclass
class DateAnchor:
    key: str
    display_name: str
    origin: str  # "core" / "settings" / "discovered"
    frontmatter_key: Optional[str] = None
    current_value: Optional[str] = None


def _key_to_display_name(key: str) -> str:
    """"reviewDate" / "review_date" -> "Review date" """
    spaced = _CAMEL_BOUNDARY.sub(r"\1 \2", key).replace("_", " ").replace("-", " ")
    words = spaced.split()
    return " ".join(words).capitalize() if words else key


class AnchorResolver:
    def __init__(
        self,
        field_mapping: Optional[Dict[str, str]] = None,
        user_fields: Optional[Iterable[UserField]] = None,
    ) -> None:
        # 内部字段名 -> 用户在 frontmatter 中使用的属性名
        self.field_mapping: Dict[str, str] = dict(field_mapping or {})
        self.user_fields: List[UserField] = list(user_fields or [])

    def to_user_field(self, key: str) -> str:
        return self.field_mapping.get(key, key)

    def resolve(self, task: Task, anchor_key: str) -> Optional[str]:
        if not anchor_key:
            return None

        built_in = _BUILT_IN_BY_KEY.get(anchor_key)
        if built_in is not None:
            value = getattr(task, built_in.attr, None)
            if isinstance(value, str) and value:
                return value

        value = task.custom_properties.get(anchor_key)
        if isinstance(value, str) and value:
            return value

        frontmatter = task.frontmatter or {}
        direct = normalize_date_value(frontmatter.get(anchor_key))
        if direct:
            return direct

        mapped_key = self.to_user_field(anchor_key)
        if mapped_key != anchor_key:
            mapped = normalize_date_value(frontmatter.get(mapped_key))
            if mapped:
                return mapped

        return None

    def display_name(self, anchor_key: str) -> str:
        built_in = _BUILT_IN_BY_KEY.get(anchor_key)
        if built_in is not None:
            return built_in.display_name

        for user_field in self.user_fields:
            if user_field.key == anchor_key:
                return user_field.display_name or user_field.key

        return anchor_key

    def available_anchors(self, task: Optional[Task] = None) -> List[DateAnchor]:
        """列出可作为锚点的日期字段：内置字段、配置的日期型用户字段、任务上发现的日期属性"""
        anchors: List[DateAnchor] = []
        known = set(_BUILT_IN_BY_KEY)
        known.update(self.field_mapping.values())

        for built_in in BUILT_IN_DATE_FIELDS:
            mapped = self.to_user_field(built_in.key)
            anchor = DateAnchor(
                key=built_in.key,
                display_name=built_in.display_name,
                origin="core",
                frontmatter_key=mapped if mapped != built_in.key else None,
            )
            if task is not None:
                value = getattr(task, built_in.attr, None)
                if isinstance(value, str) and value:
                    anchor.current_value = value
            anchors.append(anchor)

        for user_field in self.user_fields:
            if user_field.type != "date" or user_field.key in known:
                continue
            anchor = DateAnchor(
                key=user_field.key,
                display_name=user_field.display_name or _key_to_display_name(user_field.key),
                origin="settings",
            )
            if task is not None:
                value = task.custom_properties.get(user_field.key)
                if isinstance(value, str) and value:
                    anchor.current_value = value
            known.add(user_field.key)
            anchors.append(anchor)

        if task is not None:
            for source in (task.frontmatter or {}, task.custom_properties):
                for key, value in source.items():
                    if key in known:
                        continue
                    date_str = normalize_date_value(value)
                    if date_str:
                        anchors.append(DateAnchor(
                            key=key,
                            display_name=_key_to_display_name(key),
                            origin="discovered",
                            current_value=date_str,
                        ))
                        known.add(key)

        return anchors
