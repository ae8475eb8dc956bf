from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, Field

from taskreminders.world.reminder import NotificationScheduler


@dataclass
class RuntimeControl:
    shutdown_event: asyncio.Event
    started_at: float
    scheduler: Optional[NotificationScheduler] = None
    auth_token: str = ""


class ShutdownRequest(BaseModel):
    reason: str = Field(default="manual")


class TaskPathRequest(BaseModel):
    task_path: str = Field(min_length=1)


class QueueItemOut(BaseModel):
    key: str
    task_path: str
    reminder_id: str
    semantic_type: Optional[str] = None
    notify_at: int
    notify_at_iso: str
    reminder: dict[str, Any]


class FiredReminderOut(BaseModel):
    key: str
    task_path: str
    reminder_id: str
    reminder_type: str
    message: str
    fired_at: int
