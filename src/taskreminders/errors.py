class ReminderError(Exception):
    """提醒引擎异常基类"""


class ConfigError(ReminderError):
    """配置文件或环境变量非法"""


class DispatchError(ReminderError):
    """某个通知通道发送失败（仅在该通道内部抛出，由分发器捕获）"""

    def __init__(self, channel: str, message: str) -> None:
        super().__init__(f"[{channel}] {message}")
        self.channel = channel


__all__ = ["ReminderError", "ConfigError", "DispatchError"]
