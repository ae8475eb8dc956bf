import os
from dataclasses import dataclass

from dotenv import load_dotenv

from taskreminders.logger import logger

load_dotenv()

__all__ = [
    "ENABLE_NOTIFICATIONS",
    "BROAD_SCAN_INTERVAL_SECONDS", "QUICK_CHECK_INTERVAL_SECONDS", "QUEUE_WINDOW_SECONDS",
    "WAKE_GAP_TOLERANCE_SECONDS",
    "NOTIFICATION_TYPE", "NOTIFICATION_TYPES", "NOTIFICATION_NAMESPACE", "APP_NAME",
    "WEBHOOK_URL", "WEBHOOK_SHARED_SECRET", "WEBHOOK_TIMEOUT_SECONDS",
    "CURRENT_USER", "FILTER_BY_ASSIGNMENT", "INCLUDE_UNASSIGNED_TASKS", "ASSIGNEE_FIELD_NAME",
    "REMINDER_CONFIG_FILE", "DB_PATH", "LOG_FILE", "LOG_LEVEL",
    "ADMIN_HTTP_HOST", "ADMIN_HTTP_PORT", "ADMIN_AUTH_TOKEN",
    "SchedulerSettings",
]


def _parse_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on", "y")


def _parse_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"{name} 非法: {raw!r}, 已回退到 {default}")
        return default
    if value < minimum:
        logger.warning(f"{name} 不能小于 {minimum}: {raw!r}, 已回退到 {default}")
        return default
    return value


# 总开关
ENABLE_NOTIFICATIONS = _parse_bool("ENABLE_NOTIFICATIONS", True)

# 调度节奏（秒）
BROAD_SCAN_INTERVAL_SECONDS = _parse_float("BROAD_SCAN_INTERVAL_SECONDS", 300.0, minimum=1.0)
QUICK_CHECK_INTERVAL_SECONDS = _parse_float("QUICK_CHECK_INTERVAL_SECONDS", 30.0, minimum=1.0)
QUEUE_WINDOW_SECONDS = _parse_float("QUEUE_WINDOW_SECONDS", 300.0, minimum=1.0)
# 两次全量扫描间隔超过 BROAD_SCAN_INTERVAL_SECONDS + 该容差时视为系统休眠后唤醒
WAKE_GAP_TOLERANCE_SECONDS = _parse_float("WAKE_GAP_TOLERANCE_SECONDS", 60.0)

# 通知通道: "in-app" / "system" / "both"
NOTIFICATION_TYPES = ("in-app", "system", "both")
NOTIFICATION_TYPE = os.getenv("NOTIFICATION_TYPE", "both").strip().lower()
if NOTIFICATION_TYPE not in NOTIFICATION_TYPES:
    logger.warning(f"NOTIFICATION_TYPE 非法: {NOTIFICATION_TYPE}, 已回退到 both")
    NOTIFICATION_TYPE = "both"

NOTIFICATION_NAMESPACE = os.getenv("NOTIFICATION_NAMESPACE", "taskreminders")
APP_NAME = os.getenv("APP_NAME", "TaskReminders")

# Webhook
WEBHOOK_URL = os.getenv("WEBHOOK_URL", "")
WEBHOOK_SHARED_SECRET = os.getenv("WEBHOOK_SHARED_SECRET", "")
WEBHOOK_TIMEOUT_SECONDS = _parse_float("WEBHOOK_TIMEOUT_SECONDS", 10.0, minimum=0.1)

# 设备与负责人过滤
CURRENT_USER = os.getenv("CURRENT_USER", "").strip() or None
FILTER_BY_ASSIGNMENT = _parse_bool("FILTER_BY_ASSIGNMENT", False)
INCLUDE_UNASSIGNED_TASKS = _parse_bool("INCLUDE_UNASSIGNED_TASKS", True)
ASSIGNEE_FIELD_NAME = os.getenv("ASSIGNEE_FIELD_NAME", "assignee")
if FILTER_BY_ASSIGNMENT and CURRENT_USER is None:
    logger.warning("已启用 FILTER_BY_ASSIGNMENT, 但 CURRENT_USER 未设置, 将不做负责人过滤")

# 文件路径
REMINDER_CONFIG_FILE = os.getenv("REMINDER_CONFIG_FILE", "")
DB_PATH = os.getenv("DB_PATH", "data/taskreminders.db")
LOG_FILE = os.getenv("LOG_FILE", "logs/taskreminders.log")
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")

# Admin API
ADMIN_HTTP_HOST = os.getenv("ADMIN_HTTP_HOST", "127.0.0.1")
try:
    ADMIN_HTTP_PORT = int(os.getenv("ADMIN_HTTP_PORT", "18081"))
except ValueError:
    ADMIN_HTTP_PORT = 18081
    logger.warning("ADMIN_HTTP_PORT 非法, 已回退到 18081")
ADMIN_AUTH_TOKEN = os.getenv("ADMIN_AUTH_TOKEN", "")


@dataclass
class SchedulerSettings:
    """调度器运行参数，默认值取自环境变量"""
    broad_scan_interval_seconds: float = BROAD_SCAN_INTERVAL_SECONDS
    quick_check_interval_seconds: float = QUICK_CHECK_INTERVAL_SECONDS
    queue_window_seconds: float = QUEUE_WINDOW_SECONDS
    wake_gap_tolerance_seconds: float = WAKE_GAP_TOLERANCE_SECONDS
    notification_type: str = NOTIFICATION_TYPE
    namespace: str = NOTIFICATION_NAMESPACE
    app_name: str = APP_NAME

    @property
    def broad_scan_interval_ms(self) -> int:
        return int(self.broad_scan_interval_seconds * 1000)

    @property
    def queue_window_ms(self) -> int:
        return int(self.queue_window_seconds * 1000)

    @property
    def wake_gap_threshold_ms(self) -> int:
        return int((self.broad_scan_interval_seconds + self.wake_gap_tolerance_seconds) * 1000)
