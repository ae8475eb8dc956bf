"""提醒配置加载

配置文件为 JSON，字段均可省略:
{
    "globalReminderRules": [{"id", "semanticType", "anchorProperty", "offset", "enabled", ...}],
    "fieldMapping": {"due": "deadline"},
    "userFields": [{"key": "reviewDate", "displayName": "Review date", "type": "date"}],
    "completedStatuses": ["done", "cancelled"]
}
未提供规则时使用默认的三条: 到期前 1 天 (一次性)、到期当天 (持续)、逾期后每天 (重复)。
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from taskreminders.datamodel import GlobalReminderRule, SemanticType
from taskreminders.errors import ConfigError
from taskreminders.logger import logger
from taskreminders.world.anchors import AnchorResolver, UserField
from taskreminders.world.duration import parse_duration
from taskreminders.world.reminder_rules import ReminderRuleEngine

__all__ = ["ReminderConfig", "DEFAULT_GLOBAL_RULES", "load_reminder_config", "parse_reminder_config"]


def _default_rules() -> List[GlobalReminderRule]:
    return [
        GlobalReminderRule(
            id="lead-time-1d",
            semantic_type=SemanticType.LEAD_TIME,
            anchor_property="due",
            offset="-P1D",
        ),
        GlobalReminderRule(
            id="due-date",
            semantic_type=SemanticType.DUE_DATE,
            anchor_property="due",
            offset="PT0S",
        ),
        GlobalReminderRule(
            id="overdue-daily",
            semantic_type=SemanticType.OVERDUE,
            anchor_property="due",
            offset="P1D",
            repeat_interval_hours=24,
        ),
    ]


DEFAULT_GLOBAL_RULES = _default_rules()
_SEMANTIC_TYPES = {t.value for t in SemanticType}


@dataclass
class ReminderConfig:
    rules: List[GlobalReminderRule] = field(default_factory=_default_rules)
    field_mapping: Dict[str, str] = field(default_factory=dict)
    user_fields: List[UserField] = field(default_factory=list)
    completed_statuses: List[str] = field(default_factory=lambda: ["done"])

    def build_resolver(self) -> AnchorResolver:
        return AnchorResolver(self.field_mapping, self.user_fields)

    def build_rule_engine(self, resolver: Optional[AnchorResolver] = None) -> ReminderRuleEngine:
        return ReminderRuleEngine(self.rules, resolver or self.build_resolver(), self.completed_statuses)


def _parse_rule(raw: Any, index: int) -> GlobalReminderRule:
    if not isinstance(raw, dict) or "id" not in raw:
        raise ConfigError(f"globalReminderRules[{index}] 缺少 id")
    try:
        rule = GlobalReminderRule.from_dict(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"globalReminderRules[{index}] 非法: {e}") from e

    if rule.semantic_type not in _SEMANTIC_TYPES:
        raise ConfigError(f"规则 {rule.id} 的 semanticType 非法: {rule.semantic_type!r}")
    if parse_duration(rule.offset) is None:
        raise ConfigError(f"规则 {rule.id} 的 offset 非法: {rule.offset!r}")
    if rule.repeat_interval_hours is not None and (
        not isinstance(rule.repeat_interval_hours, (int, float)) or rule.repeat_interval_hours < 0
    ):
        raise ConfigError(f"规则 {rule.id} 的 repeatIntervalHours 非法: {rule.repeat_interval_hours!r}")
    return rule


def parse_reminder_config(data: Dict[str, Any]) -> ReminderConfig:
    if not isinstance(data, dict):
        raise ConfigError("提醒配置必须是 JSON 对象")

    config = ReminderConfig()

    raw_rules = data.get("globalReminderRules")
    if raw_rules is not None:
        if not isinstance(raw_rules, list):
            raise ConfigError("globalReminderRules 必须是数组")
        config.rules = [_parse_rule(raw, i) for i, raw in enumerate(raw_rules)]
        ids = [r.id for r in config.rules]
        if len(ids) != len(set(ids)):
            raise ConfigError("globalReminderRules 中存在重复的 id")

    mapping = data.get("fieldMapping")
    if mapping is not None:
        if not isinstance(mapping, dict) or not all(isinstance(v, str) for v in mapping.values()):
            raise ConfigError("fieldMapping 必须是 字符串 -> 字符串 的映射")
        config.field_mapping = dict(mapping)

    user_fields = data.get("userFields")
    if user_fields is not None:
        if not isinstance(user_fields, list):
            raise ConfigError("userFields 必须是数组")
        config.user_fields = [
            UserField(key=f["key"], display_name=f.get("displayName", ""), type=f.get("type", "date"))
            for f in user_fields
            if isinstance(f, dict) and isinstance(f.get("key"), str)
        ]

    statuses = data.get("completedStatuses")
    if statuses is not None:
        if not isinstance(statuses, list) or not all(isinstance(s, str) for s in statuses):
            raise ConfigError("completedStatuses 必须是字符串数组")
        config.completed_statuses = list(statuses)

    return config


def load_reminder_config(path: Union[str, Path, None]) -> ReminderConfig:
    if not path:
        logger.info("未配置 REMINDER_CONFIG_FILE, 使用默认提醒规则")
        return ReminderConfig()

    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"提醒配置文件不存在: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"提醒配置文件不是合法的 JSON: {path}: {e}") from e

    config = parse_reminder_config(data)
    logger.info(f"已加载提醒配置: {path} ({len(config.rules)} 条全局规则)")
    return config
