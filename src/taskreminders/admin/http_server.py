from __future__ import annotations

import asyncio
import time
from typing import Optional

import uvicorn

from taskreminders.config.settings import ADMIN_AUTH_TOKEN, ADMIN_HTTP_HOST, ADMIN_HTTP_PORT
from taskreminders.logger import logger
from taskreminders.world.reminder import NotificationScheduler

from .app import create_app
from .schemas import RuntimeControl


def build_server(control: RuntimeControl, host: str = ADMIN_HTTP_HOST, port: int = ADMIN_HTTP_PORT) -> uvicorn.Server:
    # log_config=None: 不让 uvicorn 安装自己的 handler，日志经 InterceptHandler 进入 loguru
    config = uvicorn.Config(
        create_app(control),
        host=host,
        port=port,
        log_config=None,
        access_log=False,
    )
    server = uvicorn.Server(config)
    # 嵌入到主进程时，统一由 main.py 处理系统信号。
    server.install_signal_handlers = lambda: None
    return server


async def _stop_on_shutdown(shutdown_event: asyncio.Event, server: uvicorn.Server) -> None:
    await shutdown_event.wait()
    logger.debug("收到关闭事件, 通知 Admin HTTP 服务退出")
    server.should_exit = True


async def main_loop(
    shutdown_event: asyncio.Event,
    scheduler: Optional[NotificationScheduler] = None,
) -> None:
    control = RuntimeControl(
        shutdown_event=shutdown_event,
        started_at=time.time(),
        scheduler=scheduler,
        auth_token=ADMIN_AUTH_TOKEN,
    )
    server = build_server(control)

    watcher = asyncio.create_task(_stop_on_shutdown(shutdown_event, server))
    logger.info(
        f"Admin HTTP 服务准备启动: http://{server.config.host}:{server.config.port} "
        f"(调度器{'已启用' if scheduler is not None else '未启用'})"
    )
    try:
        await server.serve()
    finally:
        watcher.cancel()
        try:
            await watcher
        except asyncio.CancelledError:
            pass
        logger.info("Admin HTTP 服务已关闭")
