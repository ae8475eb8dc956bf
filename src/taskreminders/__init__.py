"""任务截止提醒调度与通知引擎"""

__version__ = "1.0.0"
