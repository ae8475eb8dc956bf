"""系统桌面通知 (notify-send)

notify-send 没有原生的 tag 概念，这里通过 x-dunst-stack-tag / x-canonical-private-synchronous 提示
让同一 tag 的通知互相替换。传入 on_click 时使用 --action + --wait，用户点击后回调。
"""

from __future__ import annotations

import asyncio
import contextlib
import shutil
from typing import Callable, Optional, Set

from taskreminders.errors import DispatchError
from taskreminders.logger import logger

__all__ = ["DesktopNotifier"]

CHANNEL = "system"


class DesktopNotifier:
    def __init__(self, app_name: str, command: str = "notify-send", timeout_seconds: float = 5.0,
                 urgency: str = "normal") -> None:
        self.app_name = app_name
        self.command = command
        self.timeout_seconds = timeout_seconds
        self.urgency = urgency if urgency in ("low", "normal", "critical") else "normal"
        self._click_watchers: Set[asyncio.Task] = set()

    def permission_granted(self) -> bool:
        """桌面环境没有授权流程，命令可用即视为已授权"""
        return shutil.which(self.command) is not None

    def _build_command(self, title: str, body: str, tag: str, with_action: bool) -> list[str]:
        cmd = [
            self.command,
            f"--app-name={self.app_name}",
            f"--urgency={self.urgency}",
            f"--hint=string:x-dunst-stack-tag:{tag}",
            f"--hint=string:x-canonical-private-synchronous:{tag}",
        ]
        if with_action:
            cmd += ["--action=default=Open", "--wait"]
        cmd.append(title)
        if body:
            cmd.append(body)
        return cmd

    async def notify(self, title: str, body: str, tag: str,
                     on_click: Optional[Callable[[], None]] = None) -> None:
        cmd = self._build_command(title, body, tag, with_action=on_click is not None)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise DispatchError(CHANNEL, f"无法启动 {self.command}: {e}") from e

        if on_click is not None:
            # --wait 会阻塞到通知关闭，放到后台等待点击结果
            self._watch_clicks(proc, tag, on_click)
            return

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            proc.kill()
            raise DispatchError(CHANNEL, f"{self.command} 超时") from e
        if proc.returncode != 0:
            raise DispatchError(CHANNEL, f"{self.command} 退出码 {proc.returncode}: {stderr.decode(errors='replace').strip()}")

    def _watch_clicks(self, proc: asyncio.subprocess.Process, tag: str, on_click: Callable[[], None]) -> asyncio.Task:
        watcher = asyncio.create_task(self._wait_for_click(proc, tag, on_click))
        self._click_watchers.add(watcher)
        watcher.add_done_callback(self._click_watchers.discard)
        return watcher

    async def _wait_for_click(self, proc: asyncio.subprocess.Process, tag: str,
                              on_click: Callable[[], None]) -> None:
        try:
            stdout, _ = await proc.communicate()
        except asyncio.CancelledError:
            # 关闭时不再等待点击，结束仍在 --wait 的 notify-send
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()
            raise
        if stdout.decode(errors="replace").strip() == "default":
            logger.debug(f"通知被点击: {tag}")
            try:
                on_click()
            except Exception:
                logger.exception(f"通知点击回调失败: {tag}")

    async def aclose(self) -> None:
        for watcher in list(self._click_watchers):
            watcher.cancel()
        if self._click_watchers:
            await asyncio.gather(*self._click_watchers, return_exceptions=True)
        self._click_watchers.clear()
