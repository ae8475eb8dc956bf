from __future__ import annotations

import asyncio
import time
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse

import taskreminders.storage.db_config as db_config
from taskreminders.datamodel import dedup_key
from taskreminders.logger import logger
from taskreminders.metrics import runtime_metrics
from taskreminders.utils import ms_to_iso
from taskreminders.world.reminder import NotificationScheduler

from .auth import require_admin_auth
from .schemas import FiredReminderOut, QueueItemOut, RuntimeControl, ShutdownRequest, TaskPathRequest


def create_app(control: RuntimeControl) -> FastAPI:
    app = FastAPI(title="TaskReminders Admin API", version="1.0.0")
    if not control.auth_token:
        logger.warning("未配置 ADMIN_AUTH_TOKEN，管理 API 将不可访问")

    async def authorize(request: Request) -> dict[str, str]:
        return await require_admin_auth(request, control.auth_token)

    def require_scheduler() -> NotificationScheduler:
        if control.scheduler is None:
            raise HTTPException(status_code=503, detail="调度器未启用")
        return control.scheduler

    def health_payload() -> dict[str, Any]:
        return {
            "status": "ok",
            "now_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "uptime_seconds": max(0.0, time.time() - control.started_at),
            "db_connected": db_config.conn is not None,
            "scheduler_enabled": control.scheduler is not None,
            "shutdown_requested": control.shutdown_event.is_set(),
        }

    @app.get("/healthz", include_in_schema=False)
    async def healthz() -> PlainTextResponse:
        return PlainTextResponse("ok")

    @app.get("/health", include_in_schema=False)
    async def health() -> dict[str, Any]:
        return health_payload()

    @app.get("/api/v1/health")
    async def api_health() -> dict[str, Any]:
        return health_payload()

    @app.get("/api/v1/auth/check")
    async def auth_check(request: Request) -> dict[str, Any]:
        auth_info = await authorize(request)
        return {"ok": True, "via": auth_info["auth"]}

    @app.get("/api/v1/status")
    async def get_status(request: Request) -> dict[str, Any]:
        await authorize(request)
        return require_scheduler().get_status()

    @app.get("/api/v1/metrics")
    async def get_metrics(request: Request) -> dict[str, Any]:
        await authorize(request)

        reminder_status: dict[str, Any] = {"running": False}
        if control.scheduler is not None:
            reminder_status.update(control.scheduler.get_status())

        return {
            "runtime": runtime_metrics.snapshot(),
            "components": {
                "db": {"connected": db_config.conn is not None},
                "reminder": reminder_status,
            },
            "active_tasks": len(asyncio.all_tasks()),
        }

    @app.get("/api/v1/queue")
    async def get_queue(request: Request, limit: int = 100) -> dict[str, Any]:
        await authorize(request)
        limit = max(1, min(limit, 1000))
        queue = require_scheduler().queue
        items = [
            QueueItemOut(
                key=dedup_key(item.task_path, item.reminder.id),
                task_path=item.task_path,
                reminder_id=item.reminder.id,
                semantic_type=item.reminder.semantic_type,
                notify_at=item.notify_at,
                notify_at_iso=ms_to_iso(item.notify_at),
                reminder=item.reminder.to_dict(),
            )
            for item in queue[:limit]
        ]
        return {"items": [i.model_dump() for i in items], "limit": limit, "total": len(queue)}

    @app.get("/api/v1/fired")
    async def get_fired(request: Request) -> dict[str, Any]:
        await authorize(request)
        fired = require_scheduler().get_fired_reminders()
        items = [
            FiredReminderOut(
                key=key,
                task_path=info.task_path,
                reminder_id=info.reminder_id,
                reminder_type=info.reminder_type,
                message=info.message,
                fired_at=info.fired_at,
            ).model_dump()
            for key, info in sorted(fired.items(), key=lambda kv: kv[1].fired_at)
        ]
        return {"items": items, "total": len(items)}

    @app.delete("/api/v1/fired/{key:path}")
    async def consume_fired(key: str, request: Request) -> dict[str, Any]:
        await authorize(request)
        if not require_scheduler().clear_fired_reminder(key):
            raise HTTPException(status_code=404, detail="未找到该提醒")
        return {"ok": True, "key": key}

    @app.post("/api/v1/fired/clear")
    async def clear_fired_for_task(payload: TaskPathRequest, request: Request) -> dict[str, Any]:
        await authorize(request)
        cleared = require_scheduler().clear_fired_reminders_for_task(payload.task_path)
        return {"ok": True, "task_path": payload.task_path, "cleared": cleared}

    @app.post("/api/v1/processed/clear")
    async def clear_processed_for_task(payload: TaskPathRequest, request: Request) -> dict[str, Any]:
        await authorize(request)
        await require_scheduler().clear_processed_reminders_for_task(payload.task_path)
        return {"ok": True, "task_path": payload.task_path}

    @app.post("/api/v1/refresh")
    async def refresh(request: Request) -> dict[str, Any]:
        auth_info = await authorize(request)
        scheduler = require_scheduler()
        logger.info(f"收到手动刷新请求: by={auth_info['user']}")
        await scheduler.refresh_reminders()
        return {"ok": True, "queue_size": len(scheduler.queue)}

    @app.post("/api/v1/admin/shutdown")
    async def admin_shutdown(payload: ShutdownRequest, request: Request) -> dict[str, Any]:
        auth_info = await authorize(request)
        logger.warning(f"收到远程关闭请求: by={auth_info['user']}, reason={payload.reason}")
        control.shutdown_event.set()
        return {"ok": True, "action": "shutdown", "reason": payload.reason}

    return app
