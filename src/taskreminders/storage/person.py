import json
from typing import Any, Mapping

import taskreminders.storage.db_config as db_config
from taskreminders.logger import logger
from taskreminders.world.people import PersonDirectory


async def load_person_directory() -> PersonDirectory:
    """读取全部人员的 frontmatter，构建偏好目录"""
    conn = db_config.ensure_conn()
    frontmatters: dict[str, Mapping[str, Any]] = {}
    async with conn.execute("SELECT person_id, frontmatter FROM people") as cursor:
        async for row in cursor:
            try:
                frontmatters[row[0]] = json.loads(row[1])
            except ValueError as e:
                logger.warning(f"人员 {row[0]} 的 frontmatter 无法解析, 使用默认偏好: {e}")
    logger.debug(f"已加载 {len(frontmatters)} 位人员的偏好")
    return PersonDirectory(frontmatters)


async def save_person(person_id: str, frontmatter: Mapping[str, Any],
                      directory: PersonDirectory | None = None) -> None:
    """写入人员 frontmatter；传入 directory 时同步刷新其缓存"""
    conn = db_config.ensure_conn()
    await conn.execute(
        "INSERT INTO people (person_id, frontmatter) VALUES (?, ?) "
        "ON CONFLICT(person_id) DO UPDATE SET frontmatter = excluded.frontmatter, updated_at_utc = CURRENT_TIMESTAMP",
        (person_id, json.dumps(dict(frontmatter), ensure_ascii=False, default=str)),
    )
    await conn.commit()
    if directory is not None:
        directory.set_person(person_id, frontmatter)
