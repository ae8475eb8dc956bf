"""时间工具

引擎内部统一使用 epoch 毫秒 (int) 表示时刻；日期字符串按本地时区解释，
带时区信息的字符串 (例如 "2025-06-10T09:00:00Z") 按其自身时区解释。
"""

from datetime import date, datetime, timezone
import re
import time

__all__ = ["now_ms", "to_ms", "from_ms", "parse_date_to_local", "normalize_date_value",
           "ms_to_iso", "parse_hh_mm"]

_DATE_ONLY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_HH_MM_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


def now_ms() -> int:
    """获取当前时刻 (epoch 毫秒)"""
    return int(time.time() * 1000)


def to_ms(dt: datetime) -> int:
    """datetime -> epoch 毫秒；naive datetime 视为本地时间"""
    return int(round(dt.timestamp() * 1000))


def from_ms(ms: int) -> datetime:
    """epoch 毫秒 -> 本地 naive datetime"""
    return datetime.fromtimestamp(ms / 1000)


def ms_to_iso(ms: int) -> str:
    """epoch 毫秒 -> UTC ISO 字符串, 格式: 'YYYY-MM-DDTHH:MM:SS.mmmZ'"""
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_date_to_local(value: str) -> datetime:
    """解析日期/日期时间字符串

    纯日期按本地零点处理；无效输入抛出 ValueError。
    """
    text = value.strip()
    if _DATE_ONLY_PATTERN.match(text):
        return datetime.strptime(text, "%Y-%m-%d")
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def normalize_date_value(value) -> str | None:
    """把 frontmatter 中的日期值规整为字符串，无法识别为日期时返回 None"""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str) and value.strip():
        try:
            parse_date_to_local(value)
        except ValueError:
            return None
        return value.strip()
    return None


def parse_hh_mm(value: str, default: tuple[int, int]) -> tuple[int, int]:
    """'HH:MM' -> (hours, minutes)，非法输入返回 default"""
    match = _HH_MM_PATTERN.match(str(value).strip())
    if not match:
        return default
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return default
    return hours, minutes
