"""
运行时指标收集，统计扫描次数、入队与触发的提醒数量、各通道失败次数等，供管理接口查询。
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Dict


@dataclass
class RuntimeMetrics:
    broad_scan_count: int = 0
    broad_scan_total_latency_ms: float = 0.0
    quick_check_count: int = 0
    tasks_scanned_last: int = 0
    skipped_by_assignee_last: int = 0
    skipped_disabled_last: int = 0
    person_lead_time_tasks_last: int = 0
    queued_last: int = 0
    reminder_triggered_count: int = 0
    wake_recovery_count: int = 0
    channel_error_count: Dict[str, int] = field(default_factory=dict)
    last_broad_scan_at: float | None = None

    def record_broad_scan(
        self,
        latency_ms: float,
        scanned: int,
        skipped_by_assignee: int,
        skipped_disabled: int,
        person_lead_time_tasks: int,
        queued: int,
    ) -> None:
        self.broad_scan_count += 1
        self.broad_scan_total_latency_ms += max(0.0, latency_ms)
        self.last_broad_scan_at = time.time()
        self.tasks_scanned_last = scanned
        self.skipped_by_assignee_last = skipped_by_assignee
        self.skipped_disabled_last = skipped_disabled
        self.person_lead_time_tasks_last = person_lead_time_tasks
        self.queued_last = queued

    def record_quick_check(self) -> None:
        self.quick_check_count += 1

    def record_reminder_triggered(self) -> None:
        self.reminder_triggered_count += 1

    def record_wake_recovery(self) -> None:
        self.wake_recovery_count += 1

    def record_channel_error(self, channel: str) -> None:
        self.channel_error_count[channel] = self.channel_error_count.get(channel, 0) + 1

    def snapshot(self) -> dict:
        avg_latency_ms = 0.0
        if self.broad_scan_count > 0:
            avg_latency_ms = self.broad_scan_total_latency_ms / self.broad_scan_count

        return {
            "broad_scan_count": self.broad_scan_count,
            "broad_scan_avg_latency_ms": round(avg_latency_ms, 2),
            "quick_check_count": self.quick_check_count,
            "tasks_scanned_last": self.tasks_scanned_last,
            "skipped_by_assignee_last": self.skipped_by_assignee_last,
            "skipped_disabled_last": self.skipped_disabled_last,
            "person_lead_time_tasks_last": self.person_lead_time_tasks_last,
            "queued_last": self.queued_last,
            "reminder_triggered_count": self.reminder_triggered_count,
            "wake_recovery_count": self.wake_recovery_count,
            "channel_error_count": dict(self.channel_error_count),
            "last_broad_scan_at_epoch": self.last_broad_scan_at,
            "last_broad_scan_at_utc": (
                time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(self.last_broad_scan_at))
                if self.last_broad_scan_at is not None
                else None
            ),
        }


runtime_metrics = RuntimeMetrics()


__all__ = ["RuntimeMetrics", "runtime_metrics"]
