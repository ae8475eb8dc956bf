from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

__all__ = [
    "SemanticType", "ReminderType",
    "Reminder", "Task", "GlobalReminderRule",
    "LeadTime", "PersonPreferences", "PersonContext",
    "NotificationQueueItem", "FiredReminderInfo",
    "dedup_key",
]


class SemanticType(str, Enum):
    LEAD_TIME = "lead-time"    # 一次性，锚点之前
    DUE_DATE = "due-date"      # 持续型，每个会话触发一次直到任务完成
    OVERDUE = "overdue"        # 锚点过后按固定间隔重复
    START_DATE = "start-date"  # 一次性，锚点时刻
    CUSTOM = "custom"


class ReminderType(str, Enum):
    ABSOLUTE = "absolute"
    RELATIVE = "relative"


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


# ----------------- Reminder 数据模型 ----------------
@dataclass
class Reminder:
    id: str
    type: str = ReminderType.RELATIVE.value
    related_to: Optional[str] = None     # 锚点 key, 仅 relative
    offset: Optional[str] = None         # 带符号的 ISO-8601 时长, 仅 relative
    absolute_time: Optional[str] = None  # 本地时间字符串, 仅 absolute
    description: Optional[str] = None
    semantic_type: Optional[str] = None
    is_virtual: bool = False
    source_rule_id: Optional[str] = None
    repeat_interval_hours: Optional[float] = None

    def __post_init__(self) -> None:
        self.type = _enum_value(self.type)
        self.semantic_type = _enum_value(self.semantic_type)

    def to_dict(self) -> Dict[str, Any]:
        """按对外的 camelCase 线格式输出，省略空字段"""
        data: Dict[str, Any] = {"id": self.id, "type": self.type}
        optional = {
            "relatedTo": self.related_to,
            "offset": self.offset,
            "absoluteTime": self.absolute_time,
            "description": self.description,
            "semanticType": self.semantic_type,
            "sourceRuleId": self.source_rule_id,
            "repeatIntervalHours": self.repeat_interval_hours,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        if self.is_virtual:
            data["isVirtual"] = True
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Reminder":
        return cls(
            id=str(data.get("id", "")),
            type=data.get("type", ReminderType.RELATIVE.value),
            related_to=data.get("relatedTo"),
            offset=data.get("offset"),
            absolute_time=data.get("absoluteTime"),
            description=data.get("description"),
            semantic_type=data.get("semanticType"),
            is_virtual=bool(data.get("isVirtual", False)),
            source_rule_id=data.get("sourceRuleId"),
            repeat_interval_hours=data.get("repeatIntervalHours"),
        )


# ----------------- Task 数据模型 ----------------
@dataclass
class Task:
    path: str
    title: str = ""
    status: str = "open"
    due: Optional[str] = None
    scheduled: Optional[str] = None
    date_created: Optional[str] = None
    date_modified: Optional[str] = None
    completed_date: Optional[str] = None
    assignee: Union[str, List[str], None] = None
    reminders: List[Reminder] = field(default_factory=list)
    custom_properties: Dict[str, Any] = field(default_factory=dict)
    frontmatter: Dict[str, Any] = field(default_factory=dict)  # 原始 frontmatter，锚点回退查找用

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "title": self.title,
            "status": self.status,
            "due": self.due,
            "scheduled": self.scheduled,
            "dateCreated": self.date_created,
            "dateModified": self.date_modified,
            "completedDate": self.completed_date,
            "assignee": self.assignee,
            "reminders": [r.to_dict() for r in self.reminders],
            "customProperties": dict(self.custom_properties),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            path=data["path"],
            title=data.get("title") or "",
            status=data.get("status") or "open",
            due=data.get("due"),
            scheduled=data.get("scheduled"),
            date_created=data.get("dateCreated"),
            date_modified=data.get("dateModified"),
            completed_date=data.get("completedDate"),
            assignee=data.get("assignee"),
            reminders=[Reminder.from_dict(r) for r in data.get("reminders") or []],
            custom_properties=dict(data.get("customProperties") or {}),
            frontmatter=dict(data.get("frontmatter") or {}),
        )


# ----------------- 全局提醒规则 ----------------
@dataclass
class GlobalReminderRule:
    id: str
    semantic_type: str
    anchor_property: str
    offset: str
    enabled: bool = True
    description: Optional[str] = None
    skip_if_explicit_exists: bool = True
    repeat_interval_hours: Optional[float] = None

    def __post_init__(self) -> None:
        self.semantic_type = _enum_value(self.semantic_type)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GlobalReminderRule":
        return cls(
            id=str(data["id"]),
            semantic_type=data.get("semanticType", SemanticType.CUSTOM.value),
            anchor_property=data.get("anchorProperty", "due"),
            offset=data.get("offset", "PT0S"),
            enabled=bool(data.get("enabled", True)),
            description=data.get("description"),
            skip_if_explicit_exists=bool(data.get("skipIfExplicitExists", True)),
            repeat_interval_hours=data.get("repeatIntervalHours"),
        )


# ----------------- 个人偏好 ----------------
@dataclass(frozen=True)
class LeadTime:
    value: int
    unit: str  # "minutes" / "hours" / "days" / "weeks"


@dataclass
class PersonPreferences:
    lead_times: List[LeadTime] = field(default_factory=list)  # 为空表示未声明自定义提前量
    notification_enabled: bool = True
    available_from: str = "09:00"
    available_until: str = "17:00"
    overrides_global: bool = True  # True: 替换全局 lead-time 规则; False: 叠加

    @property
    def has_custom_lead_times(self) -> bool:
        return len(self.lead_times) > 0


@dataclass
class PersonContext:
    person_id: str
    preferences: PersonPreferences


# ----------------- 调度队列 ----------------
def dedup_key(task_path: str, reminder_id: str) -> str:
    """对外使用的去重键字符串"""
    return f"{task_path}-{reminder_id}"


@dataclass
class NotificationQueueItem:
    task_path: str
    reminder: Reminder
    notify_at: int  # epoch 毫秒

    @property
    def key(self) -> tuple[str, str]:
        return (self.task_path, self.reminder.id)


@dataclass
class FiredReminderInfo:
    task_path: str
    message: str
    fired_at: int  # epoch 毫秒
    reminder_type: str
    reminder_id: str
    task: Task

    def to_dict(self) -> Dict[str, Any]:
        return {
            "taskPath": self.task_path,
            "message": self.message,
            "firedAt": self.fired_at,
            "reminderType": self.reminder_type,
            "reminderId": self.reminder_id,
            "task": self.task.to_dict(),
        }
