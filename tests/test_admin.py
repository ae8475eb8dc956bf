import asyncio
import time
from datetime import datetime

from fastapi.testclient import TestClient

from taskreminders.admin.app import create_app
from taskreminders.admin.auth import TOKEN_HEADER
from taskreminders.admin.http_server import build_server
from taskreminders.admin.schemas import RuntimeControl
from taskreminders.datamodel import FiredReminderInfo, Task
from taskreminders.utils import to_ms

TOKEN = "test-admin-token"
AUTH = {"Authorization": f"Bearer {TOKEN}"}
REPORT = Task(path="tasks/report.md", title="Report", due="2025-06-10T09:00:00")


def _client(scheduler=None, token=TOKEN):
    control = RuntimeControl(
        shutdown_event=asyncio.Event(),
        started_at=time.time(),
        scheduler=scheduler,
        auth_token=token,
    )
    return TestClient(create_app(control)), control


def _fired(path: str, reminder_id: str, fired_at: int) -> FiredReminderInfo:
    return FiredReminderInfo(task_path=path, message=f"{path} due", fired_at=fired_at,
                             reminder_type="due-date", reminder_id=reminder_id, task=Task(path=path))


def test_health_needs_no_auth():
    client, _ = _client()
    assert client.get("/healthz").text == "ok"
    body = client.get("/api/v1/health").json()
    assert body["status"] == "ok"
    assert body["scheduler_enabled"] is False


def test_auth_rules():
    client, _ = _client()
    assert client.get("/api/v1/auth/check").status_code == 401
    assert client.get("/api/v1/auth/check", headers={"Authorization": "Bearer wrong"}).status_code == 401
    assert client.get("/api/v1/auth/check", headers=AUTH).json() == {"ok": True, "via": "bearer"}
    assert client.get("/api/v1/auth/check", headers={TOKEN_HEADER: TOKEN}).json() == {"ok": True, "via": "header"}
    assert client.get("/api/v1/auth/check").headers["WWW-Authenticate"] == "Bearer"

    unconfigured, _ = _client(token="")
    assert unconfigured.get("/api/v1/auth/check", headers=AUTH).status_code == 503


def test_scheduler_routes_unavailable_without_scheduler():
    client, _ = _client()
    assert client.get("/api/v1/status", headers=AUTH).status_code == 503
    assert client.get("/api/v1/queue", headers=AUTH).status_code == 503
    metrics = client.get("/api/v1/metrics", headers=AUTH).json()
    assert metrics["components"]["reminder"] == {"running": False}


def test_refresh_and_queue(make_env):
    env = make_env([REPORT], now=to_ms(datetime(2025, 6, 9, 8, 57)))
    client, _ = _client(env.scheduler)

    refreshed = client.post("/api/v1/refresh", headers=AUTH).json()
    assert refreshed == {"ok": True, "queue_size": 1}

    queue = client.get("/api/v1/queue", headers=AUTH).json()
    assert queue["total"] == 1
    item = queue["items"][0]
    assert item["key"] == "tasks/report.md-virtual_lead-time-1d"
    assert item["semantic_type"] == "lead-time"
    assert item["notify_at"] == to_ms(datetime(2025, 6, 9, 9, 0))

    status = client.get("/api/v1/status", headers=AUTH).json()
    assert status["queue_size"] == 1
    assert status["next_notify_at"] == item["notify_at"]


def test_fired_reminders_listing_and_consuming(make_env):
    env = make_env()
    store = env.scheduler.fired_store
    store.add(_fired("tasks/b.md", "r2", 2000))
    store.add(_fired("tasks/a.md", "r1", 1000))
    store.add(_fired("tasks/a.md", "r3", 3000))
    client, _ = _client(env.scheduler)

    listed = client.get("/api/v1/fired", headers=AUTH).json()
    assert [i["key"] for i in listed["items"]] == ["tasks/a.md-r1", "tasks/b.md-r2", "tasks/a.md-r3"]

    assert client.delete("/api/v1/fired/tasks/b.md-r2", headers=AUTH).json() == {"ok": True, "key": "tasks/b.md-r2"}
    assert client.delete("/api/v1/fired/tasks/b.md-r2", headers=AUTH).status_code == 404

    cleared = client.post("/api/v1/fired/clear", json={"task_path": "tasks/a.md"}, headers=AUTH).json()
    assert cleared["cleared"] == 2
    assert len(store) == 0

    assert client.post("/api/v1/fired/clear", json={"task_path": ""}, headers=AUTH).status_code == 422


def test_clear_processed(make_env):
    env = make_env([REPORT], now=to_ms(datetime(2025, 6, 10, 12, 0)))

    async def fire_due_date():
        await env.scheduler.broad_scan()
        env.clock.advance(1000)
        await env.scheduler.quick_check()

    asyncio.run(fire_due_date())
    assert env.scheduler.processed_keys
    client, _ = _client(env.scheduler)

    response = client.post("/api/v1/processed/clear", json={"task_path": REPORT.path}, headers=AUTH)
    assert response.json() == {"ok": True, "task_path": REPORT.path}
    assert env.scheduler.processed_keys == frozenset()


def test_shutdown_sets_event():
    client, control = _client()
    response = client.post("/api/v1/admin/shutdown", json={"reason": "maintenance"}, headers=AUTH)
    assert response.json() == {"ok": True, "action": "shutdown", "reason": "maintenance"}
    assert control.shutdown_event.is_set()


def test_build_server_embeds_without_own_logging():
    control = RuntimeControl(shutdown_event=asyncio.Event(), started_at=time.time(), auth_token=TOKEN)
    server = build_server(control, host="127.0.0.1", port=18099)
    assert server.config.host == "127.0.0.1"
    assert server.config.port == 18099
    assert server.config.log_config is None
    assert not server.should_exit
