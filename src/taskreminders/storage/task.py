"""任务存储

模块级函数即满足 TaskStore 协议 (get_all_tasks / get_task_info)，可直接把本模块交给调度器。
写入操作会发布 task.updated 事件，携带 path / previous_task / updated_task；删除时 updated_task 为 None。
"""

import json

import taskreminders.storage.db_config as db_config
from taskreminders.datamodel import Task
from taskreminders.events import bus, E
from taskreminders.logger import logger


def _serialize(task: Task) -> str:
    data = task.to_dict()
    data["frontmatter"] = task.frontmatter
    return json.dumps(data, ensure_ascii=False, default=str)


def _deserialize(raw: str) -> Task:
    return Task.from_dict(json.loads(raw))


async def get_all_tasks() -> list[Task]:
    """获取全部任务"""
    conn = db_config.ensure_conn()
    async with conn.execute("SELECT data FROM tasks ORDER BY path") as cursor:
        rows = await cursor.fetchall()
    tasks: list[Task] = []
    for row in rows:
        try:
            tasks.append(_deserialize(row[0]))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"跳过无法解析的任务记录: {e}")
    return tasks


async def get_task_info(path: str) -> Task | None:
    """按路径获取任务，不存在时返回 None"""
    conn = db_config.ensure_conn()
    async with conn.execute("SELECT data FROM tasks WHERE path = ?", (path,)) as cursor:
        row = await cursor.fetchone()
    return _deserialize(row[0]) if row else None


async def upsert_task(task: Task) -> Task | None:
    """写入任务，返回写入前的旧任务"""
    conn = db_config.ensure_conn()
    previous = await get_task_info(task.path)
    await conn.execute(
        "INSERT INTO tasks (path, title, status, data) VALUES (?, ?, ?, ?) "
        "ON CONFLICT(path) DO UPDATE SET title = excluded.title, status = excluded.status, "
        "data = excluded.data, updated_at_utc = CURRENT_TIMESTAMP",
        (task.path, task.title, task.status, _serialize(task)),
    )
    await conn.commit()
    logger.trace(f"写入任务: path={task.path}, status={task.status}, due={task.due}")
    bus.emit(E.TASK_UPDATED, path=task.path, previous_task=previous, updated_task=task)
    return previous


async def delete_task(path: str) -> bool:
    conn = db_config.ensure_conn()
    previous = await get_task_info(path)
    if previous is None:
        return False
    await conn.execute("DELETE FROM tasks WHERE path = ?", (path,))
    await conn.commit()
    logger.trace(f"删除任务: path={path}")
    bus.emit(E.TASK_UPDATED, path=path, previous_task=previous, updated_task=None)
    return True
