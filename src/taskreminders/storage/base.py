"""调度器依赖的外部协作者接口

任务存储只负责读取；任务变更通过事件总线的 task.updated 事件 (path, previous_task, updated_task) 推送。
"""

from __future__ import annotations

from typing import List, Optional, Protocol, runtime_checkable

from taskreminders.datamodel import PersonPreferences, Task

__all__ = ["TaskStore", "RecipientFilter", "PersonPreferenceSource"]


@runtime_checkable
class TaskStore(Protocol):
    async def get_all_tasks(self) -> List[Task]: ...

    async def get_task_info(self, path: str) -> Optional[Task]: ...


@runtime_checkable
class RecipientFilter(Protocol):
    def is_relevant(self, task: Task) -> bool: ...

    def get_relevant_person(self, task: Task) -> Optional[str]: ...


@runtime_checkable
class PersonPreferenceSource(Protocol):
    def get_preferences(self, person_id: str) -> PersonPreferences: ...
